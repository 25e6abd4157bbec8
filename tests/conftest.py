"""Shared fixtures for monolithic_builder tests."""

from datetime import datetime, timezone

import pytest

from monolithic_builder.process import Capabilities, FakeInvoker

FIXED_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

# Settings read these names from the environment; tests start without them.
SETTINGS_ENV = (
    "RESULTS_PATH",
    "TLSVERIFY",
    "IMAGE_EXPIRES_AFTER",
    "LOG_LEVEL",
    "COMMAND_TIMEOUT",
    "GIT_URL",
    "GIT_REVISION",
    "GIT_REFSPEC",
    "GIT_DEPTH",
    "GIT_SUBMODULES",
    "GIT_AUTH_PATH",
    "NETRC_PATH",
    "IMAGE_URL",
    "DOCKERFILE",
    "CONTEXT",
    "REBUILD",
    "SKIP_CHECKS",
    "HERMETIC",
    "PREFETCH_INPUT",
    "DEV_PACKAGE_MANAGERS",
    "PREFETCH_LOG_LEVEL",
    "CONFIG_FILE_CONTENT",
    "BUILD_ARGS",
    "BUILD_ARGS_FILE",
    "WORKSPACE_PATH",
    "IMAGE",
    "IMAGES",
    "ALWAYS_BUILD_INDEX",
    "MONOLITHIC_COMMAND",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove settings variables inherited from the test runner's environment."""
    for name in SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake() -> FakeInvoker:
    """Create a fake process invoker."""
    return FakeInvoker()


@pytest.fixture
def caps(fake: FakeInvoker) -> Capabilities:
    """Create capabilities with the fake invoker and a fixed clock."""
    return Capabilities(invoker=fake, clock=lambda: FIXED_NOW)
