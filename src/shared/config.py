"""Environment configuration using pydantic-settings."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class ReleaseSettings(BaseSettings):
    """Process-wide settings read from the environment."""
    log_level: str = Field(default="info", validation_alias="LOG_LEVEL")
    local_mode: bool = Field(default=False, validation_alias="RELEASE_LOCAL_MODE")
    cache_path: str | None = Field(default=None, validation_alias="RELEASE_CACHE_PATH")
    credentials_root: str = Field(
        default=".image-release/credentials",
        validation_alias="RELEASE_CREDENTIALS_ROOT",
    )
    docker_command: str = Field(default="docker", validation_alias="DOCKER_COMMAND")
    kaniko_command: str = Field(
        default="/kaniko/executor", validation_alias="KANIKO_EXECUTOR"
    )
    link_webhook_url: str | None = Field(
        default=None, validation_alias="RELEASE_LINK_WEBHOOK_URL"
    )

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }


class DeploySettings(ReleaseSettings):
    """Settings for the branch deployer."""
    deploy_base_url: str = Field(
        default="http://localhost", validation_alias="DEPLOY_BASE_URL"
    )
    deploy_lower_port: int = Field(default=9090, validation_alias="DEPLOY_LOWER_PORT")
