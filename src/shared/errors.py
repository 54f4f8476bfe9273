"""Error taxonomy shared by the release pipeline and the branch deployer.

Every error carries a human-readable message and, where a subprocess was
involved, its captured stdout/stderr.  None of them are retried internally;
the invoking scheduler decides whether to run the pipeline again.
"""
from __future__ import annotations

from typing import Any


class DeliveryError(Exception):
    """Base error for build, push and deploy failures."""

    default_message = "Delivery failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: int = 1,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.message = message or self.default_message
        # A zero code would read as success downstream.
        self.code = code if code != 0 else 1
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return a structured view suitable for logs and reports."""
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }


class ConfigurationError(DeliveryError):
    """Missing or contradictory registry/credential configuration."""

    default_message = "Invalid configuration"


class AuthError(DeliveryError):
    """Credential material could not be written or the login failed."""

    default_message = "Registry authentication failed"


class BuilderUnavailableError(DeliveryError):
    """The selected builder binary did not answer its pre-flight probe."""

    default_message = "Builder is not available"


class BuildFailure(DeliveryError):
    """The image build exited non-zero."""

    default_message = "Image build failed"


class PushFailure(DeliveryError):
    """An image push exited non-zero."""

    default_message = "Image push failed"


class LinkPublishFailure(DeliveryError):
    """The image was built but could not be linked to its release record."""

    default_message = "Image link failed"


class CapacityExceededError(DeliveryError):
    """The ceiling of concurrently tracked branch containers is reached."""

    default_message = "Deployment capacity exceeded"


class DeployTimeoutOrCrash(DeliveryError):
    """The container exited (or timed out) before signalling readiness."""

    default_message = "Docker deployment failure"


class DeploySpawnError(DeliveryError):
    """The container process could not be spawned at all."""

    default_message = "Fatal error deploying using Docker"
