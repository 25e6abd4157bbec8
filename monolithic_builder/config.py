"""Configuration settings for monolithic_builder.

Uses pydantic-settings for config parsing from environment variables and
defaults. Variable names match the task parameters of the pipeline
(``IMAGE_URL``, ``GIT_REVISION``, ...) so no prefix is used; empty values
count as unset. Configuration precedence: CLI arguments > env vars >
defaults.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any, Literal, TypeVar

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from monolithic_builder.errors import ConfigurationError

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def parse_list(value: str) -> list[str]:
    """Parse a list parameter from its environment representation.

    Accepts a JSON array, a comma-separated string, or a
    whitespace-separated string (in that order of preference).
    """
    value = value.strip()
    if not value:
        return []
    if value.startswith("[") and value.endswith("]"):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [str(item) for item in parsed]
    if "," in value:
        return [part.strip() for part in value.split(",") if part.strip()]
    return value.split()


class CommonSettings(BaseSettings):
    """Settings shared by every command."""

    model_config = SettingsConfigDict(
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
    )

    results_path: Path = Field(
        default=Path("/tekton/results"),
        description="Directory receiving one file per task result",
    )
    tls_verify: bool = Field(
        default=True,
        validation_alias="TLSVERIFY",
        description="Verify registry TLS certificates",
    )
    image_expires_after: str = Field(
        default="",
        description="Expiration duration for the image, e.g. 1w",
    )
    log_level: LogLevel = Field(
        default="INFO",
        description="Logging level",
    )
    command_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Timeout in seconds for each external command (unset = none)",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class BuildContainerSettings(CommonSettings):
    """Settings for the build-container command."""

    # Git
    git_url: str = Field(default="", description="Source repository URL")
    git_revision: str = Field(
        default="", description="Commit id, branch or tag to build"
    )
    git_refspec: str = Field(default="", description="Branch or tag to clone")
    git_depth: int = Field(default=1, ge=0, description="Clone depth (0 = full)")
    git_submodules: bool = Field(default=True, description="Update submodules")
    git_auth_path: str = Field(default="", description="Mounted git credentials")
    netrc_path: str = Field(default="", description="Mounted .netrc directory")

    # Image
    image_url: str = Field(default="", description="Destination image reference")
    dockerfile: str = Field(default="./Dockerfile", description="Dockerfile path")
    context: str = Field(default=".", description="Build context, relative to source")
    rebuild: bool = Field(default=False, description="Rebuild even if image exists")
    skip_checks: bool = Field(default=False, description="Skip the existence check")
    hermetic: bool = Field(default=False, description="Build without network")

    # Prefetch
    prefetch_input: str = Field(default="", description="cachi2 input spec")
    dev_package_managers: bool = Field(
        default=False, description="Enable cachi2 dev package managers"
    )
    prefetch_log_level: str = Field(
        default="", description="cachi2 log level (defaults to LOG_LEVEL)"
    )
    config_file_content: str = Field(default="", description="cachi2 YAML config")

    # Build
    build_args: Annotated[list[str], NoDecode] = Field(
        default_factory=list, description="KEY=value build arguments"
    )
    build_args_file: str = Field(default="", description="Build argument file")

    # Workspace
    workspace_path: Path = Field(
        default=Path("/workspace"), description="Shared workspace directory"
    )

    @field_validator("build_args", mode="before")
    @classmethod
    def _split_build_args(cls, value: Any) -> Any:
        return parse_list(value) if isinstance(value, str) else value

    @property
    def source_path(self) -> Path:
        return self.workspace_path / "source"

    @property
    def prefetch_path(self) -> Path:
        return self.workspace_path / "cachi2"

    @property
    def effective_prefetch_log_level(self) -> str:
        return self.prefetch_log_level or self.log_level.lower()


class ImageIndexSettings(CommonSettings):
    """Settings for the build-image-index command."""

    image_url: str = Field(
        default="",
        validation_alias="IMAGE",
        description="Destination reference of the image index",
    )
    images: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Per-architecture image references, in order",
    )
    always_build_index: bool = Field(
        default=False,
        description="Build an index even for a single image",
    )

    @field_validator("images", mode="before")
    @classmethod
    def _split_images(cls, value: Any) -> Any:
        return parse_list(value) if isinstance(value, str) else value


SettingsT = TypeVar("SettingsT", bound=CommonSettings)


def load_settings(settings_cls: type[SettingsT], **overrides: Any) -> SettingsT:
    """Load settings from the environment, with explicit overrides.

    Args:
        settings_cls: Settings class to instantiate.
        **overrides: Field values taking precedence over the environment.

    Returns:
        Settings instance.

    Raises:
        ConfigurationError: If a value fails validation.
    """
    try:
        return settings_cls(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e


def get_build_settings(**overrides: Any) -> BuildContainerSettings:
    """Get build-container settings loaded from the environment."""
    return load_settings(BuildContainerSettings, **overrides)


def get_index_settings(**overrides: Any) -> ImageIndexSettings:
    """Get build-image-index settings loaded from the environment."""
    return load_settings(ImageIndexSettings, **overrides)


def print_settings_json(settings: CommonSettings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses build-container
            settings from the environment if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_build_settings()
    return settings.model_dump_json(indent=2)


__all__ = [
    "BuildContainerSettings",
    "CommonSettings",
    "ImageIndexSettings",
    "get_build_settings",
    "get_index_settings",
    "load_settings",
    "parse_list",
    "print_settings_json",
]
