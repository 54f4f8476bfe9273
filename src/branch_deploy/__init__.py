"""Per-branch local container deployment.

One stable host port per repository branch, replace-on-redeploy, and
readiness detection from container output.
"""
from src.branch_deploy.deployer import BranchDeploymentManager
from src.branch_deploy.models import DeployerOptions, Deployment

__all__ = [
    "BranchDeploymentManager",
    "DeployerOptions",
    "Deployment",
]
