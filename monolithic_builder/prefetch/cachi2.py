"""Dependency prefetch with cachi2.

This module handles:
- Composing ``cachi2 fetch-deps``, ``generate-env`` and ``inject-files``
- Validating and writing the optional cachi2 config file
- Running the three steps in order; any failure is fatal

Prefetched content lives under ``<prefetch_path>/output`` and the
environment file at ``<prefetch_path>/cachi2.env``. Hermetic builds mount
``<prefetch_path>`` at ``/cachi2``, so both are addressed from inside the
build container by the paths generated here.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from monolithic_builder.errors import ConfigurationError
from monolithic_builder.image.commands import PREFETCH_MOUNT

if TYPE_CHECKING:
    from monolithic_builder.process import ProcessInvoker

logger = logging.getLogger(__name__)

CACHI2 = "cachi2"
OUTPUT_DIR_NAME = "output"
ENV_FILE_NAME = "cachi2.env"
CONFIG_FILE_NAME = "cachi2.yaml"

# Output directory as seen from inside the build container
CONTAINER_OUTPUT_DIR = f"{PREFETCH_MOUNT}/{OUTPUT_DIR_NAME}"


@dataclass(frozen=True)
class PrefetchConfig:
    """Inputs for dependency prefetching.

    Attributes:
        input: cachi2 input spec (package manager name or JSON).
        source_path: Cloned source directory.
        prefetch_path: Root of prefetched content, mounted in hermetic builds.
        dev_package_managers: Enable cachi2 dev package managers.
        log_level: cachi2 log level.
        config_file_content: Optional YAML config for cachi2.
    """

    input: str
    source_path: Path
    prefetch_path: Path
    dev_package_managers: bool = False
    log_level: str = "info"
    config_file_content: str = ""

    @property
    def output_path(self) -> Path:
        return self.prefetch_path / OUTPUT_DIR_NAME

    @property
    def env_file(self) -> Path:
        return self.prefetch_path / ENV_FILE_NAME

    @property
    def config_file(self) -> Path:
        return self.prefetch_path / CONFIG_FILE_NAME


def cachi2_fetch_args(config: PrefetchConfig) -> list[str]:
    """Compose the ``cachi2 fetch-deps`` arguments."""
    args: list[str] = []
    if config.log_level:
        args.append(f"--log-level={config.log_level}")
    if config.config_file_content:
        args.extend(["--config-file", str(config.config_file)])
    args.extend(
        [
            "fetch-deps",
            f"--source={config.source_path}",
            f"--output={config.output_path}",
        ]
    )
    if config.dev_package_managers:
        args.append("--dev-package-managers")
    args.append(config.input)
    return args


def cachi2_generate_env_args(config: PrefetchConfig) -> list[str]:
    return [
        "generate-env",
        str(config.output_path),
        "--format",
        "env",
        "--for-output-dir",
        CONTAINER_OUTPUT_DIR,
        "--output",
        str(config.env_file),
    ]


def cachi2_inject_files_args(config: PrefetchConfig) -> list[str]:
    return [
        "inject-files",
        str(config.output_path),
        "--for-output-dir",
        CONTAINER_OUTPUT_DIR,
    ]


def write_config_file(config: PrefetchConfig) -> Path | None:
    """Validate and write the cachi2 config file, if any.

    Raises:
        ConfigurationError: If the content is not a YAML mapping.
    """
    if not config.config_file_content:
        return None
    try:
        parsed = yaml.safe_load(config.config_file_content)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid cachi2 config file content: {e}") from e
    if parsed is not None and not isinstance(parsed, dict):
        raise ConfigurationError("cachi2 config file content must be a YAML mapping")

    config.config_file.parent.mkdir(parents=True, exist_ok=True)
    config.config_file.write_text(config.config_file_content)
    return config.config_file


def fetch_dependencies(invoker: ProcessInvoker, config: PrefetchConfig) -> None:
    """Prefetch build dependencies for a hermetic build.

    Args:
        invoker: Process invoker.
        config: Prefetch inputs.

    Raises:
        ConfigurationError: If the cachi2 config content is invalid.
        ExternalToolError: If any cachi2 step failed.
    """
    if not config.input:
        logger.info("No prefetch input provided, skipping dependency prefetch")
        return

    logger.info(
        "Starting dependency prefetch: input=%s source=%s output=%s",
        config.input,
        config.source_path,
        config.output_path,
    )
    config.output_path.mkdir(parents=True, exist_ok=True)
    write_config_file(config)

    for args in (
        cachi2_fetch_args(config),
        cachi2_generate_env_args(config),
        cachi2_inject_files_args(config),
    ):
        logger.info("Executing: %s", shlex.join([CACHI2, *args]))
        invoker.invoke(CACHI2, args, stream=True).check()

    logger.info("Dependency prefetch completed")


__all__ = [
    "CACHI2",
    "CONTAINER_OUTPUT_DIR",
    "PrefetchConfig",
    "cachi2_fetch_args",
    "cachi2_generate_env_args",
    "cachi2_inject_files_args",
    "fetch_dependencies",
    "write_config_file",
]
