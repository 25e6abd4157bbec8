"""Tests for buildcontainer/builder.py module.

Drives the build-container state machine end to end against a fake
invoker and a fixed clock.
"""

import json
import shlex
from pathlib import Path

import pytest

from monolithic_builder.buildcontainer import BuildContainerBuilder
from monolithic_builder.config import BuildContainerSettings
from monolithic_builder.errors import (
    CancellationError,
    ConfigurationError,
    ExternalToolError,
    PipelineError,
    ResolutionError,
)
from monolithic_builder.process import Capabilities, FakeInvoker
from monolithic_builder.types import BuildState

IMAGE = "quay.io/org/app:v1"
GIT_URL = "https://github.com/org/app.git"
SHA = "0123456789abcdef0123456789abcdef01234567"
DIGEST = "sha256:" + "d" * 64


@pytest.fixture
def settings(tmp_path: Path) -> BuildContainerSettings:
    """Create build settings on a temporary workspace."""
    return BuildContainerSettings(
        image_url=IMAGE,
        git_url=GIT_URL,
        git_revision="main",
        workspace_path=tmp_path / "workspace",
        results_path=tmp_path / "results",
    )


@pytest.fixture
def scripted(fake: FakeInvoker, settings: BuildContainerSettings) -> FakeInvoker:
    """Script a missing image, a resolvable HEAD and a known digest."""
    fake.on("skopeo", "inspect", "--raw", exit_status=1, stderr="manifest unknown")
    fake.on("skopeo", "inspect", f"docker://{IMAGE}", stdout=json.dumps({"Digest": DIGEST}))
    fake.on("git", "-C", str(settings.source_path), "rev-parse", stdout=f"{SHA}\n")
    return fake


def read_results(path: Path) -> dict[str, str]:
    """Read all result files in a directory."""
    return {p.name: p.read_text() for p in path.iterdir()}


def inner_build_args(fake: FakeInvoker) -> list[str]:
    """Return the buildah arguments wrapped by the unshare call."""
    (call,) = fake.calls_to("unshare")
    return shlex.split(call[-1])


class TestBuildPath:
    """Tests for the path that builds and pushes."""

    def test_builds_missing_image(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """A missing image should be built, pushed and recorded."""
        builder = BuildContainerBuilder(settings, caps)
        result = builder.execute()

        assert result.image_url == IMAGE
        assert result.image_digest == DIGEST
        assert builder.history == [
            BuildState.INIT,
            BuildState.CHECK_EXISTENCE,
            BuildState.CLONE_SOURCE,
            BuildState.BUILD_IMAGE,
            BuildState.PUSH_IMAGE,
            BuildState.RESOLVE_DIGEST,
            BuildState.WRITE_RESULTS,
            BuildState.DONE,
        ]
        assert read_results(settings.results_path) == {
            "build": "true",
            "commit": SHA,
            "url": GIT_URL,
            "IMAGE_URL": IMAGE,
            "IMAGE_DIGEST": DIGEST,
        }

    def test_step_order(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """Tools should run as existence check, clone, build, push, inspect."""
        BuildContainerBuilder(settings, caps).execute()
        tools = [(c[0], c[1]) for c in scripted.calls if c[0] != "git" or c[1] == "clone"]
        assert tools == [
            ("skopeo", "inspect"),
            ("git", "clone"),
            ("unshare", "-Uf"),
            ("buildah", "push"),
            ("skopeo", "inspect"),
        ]

    def test_build_vector(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """The build should use source paths, the commit label and expiry."""
        settings = settings.model_copy(
            update={"image_expires_after": "1d", "build_args": ["A=1"]}
        )
        BuildContainerBuilder(settings, caps).execute()

        args = inner_build_args(scripted)
        source = settings.source_path
        assert args[0] == "buildah"
        assert args[1:6] == ["build", "--file", str(source / "./Dockerfile"), "--tag", IMAGE]
        assert ["--build-arg", "A=1"] == args[6:8]
        assert f"io.konflux.commit={SHA}" in args
        assert "quay.expires-after=2024-01-02T12:00:00Z" in args
        assert args[-1] == str(source / ".")
        (unshare,) = scripted.calls_to("unshare")
        assert unshare[unshare.index("-w") + 1] == str(source / ".")

    def test_rebuild_skips_existence_check(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """Rebuild should force a build without probing the registry."""
        settings = settings.model_copy(update={"rebuild": True})
        builder = BuildContainerBuilder(settings, caps)
        builder.execute()
        assert scripted.calls_to("skopeo", "inspect", "--raw") == []
        assert builder.build_required is True

    def test_skip_checks_skips_existence_check(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """Skipping checks should force a build without probing."""
        settings = settings.model_copy(update={"skip_checks": True})
        BuildContainerBuilder(settings, caps).execute()
        assert scripted.calls_to("skopeo", "inspect", "--raw") == []
        assert len(scripted.calls_to("unshare")) == 1

    def test_existence_check_error_means_build(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """An existence check that cannot run should fall back to building."""
        scripted.on(
            "skopeo", "inspect", "--raw", error=ExternalToolError("skopeo", [], 127)
        )
        builder = BuildContainerBuilder(settings, caps)
        builder.execute()
        assert builder.build_required is True
        assert len(scripted.calls_to("buildah", "push")) == 1

    def test_prefetch_before_build(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """Prefetch input should run cachi2 before a hermetic build."""
        settings = settings.model_copy(
            update={"prefetch_input": "gomod", "hermetic": True}
        )
        builder = BuildContainerBuilder(settings, caps)
        builder.execute()

        assert BuildState.PREFETCH_DEPS in builder.history
        tools = [c[0] for c in scripted.calls]
        assert tools.index("cachi2") < tools.index("unshare")
        assert len(scripted.calls_to("cachi2")) == 3
        args = inner_build_args(scripted)
        assert "--network=none" in args
        assert f"{settings.prefetch_path}:/cachi2:Z" in args

    def test_auth_failure_only_warns(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
        tmp_path: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Missing credential mounts should not stop the build."""
        settings = settings.model_copy(update={"git_auth_path": str(tmp_path / "none")})
        with caplog.at_level("WARNING"):
            BuildContainerBuilder(settings, caps, home=tmp_path / "home").execute()
        assert "Failed to set up authentication" in caplog.text


class TestSkipPath:
    """Tests for the path that reuses an existing image."""

    def test_existing_image_skips_build(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """An existing image should be cloned for its commit but not rebuilt."""
        scripted.on("skopeo", "inspect", "--raw", exit_status=0)
        builder = BuildContainerBuilder(settings, caps)
        builder.execute()

        assert BuildState.SKIP_PATH in builder.history
        assert scripted.calls_to("unshare") == []
        assert scripted.calls_to("buildah") == []
        assert scripted.calls_to("cachi2") == []
        results = read_results(settings.results_path)
        assert results["build"] == "false"
        assert results["commit"] == SHA
        assert results["IMAGE_DIGEST"] == DIGEST

    def test_existing_image_skips_prefetch(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """Prefetch should not run when the build is skipped."""
        scripted.on("skopeo", "inspect", "--raw", exit_status=0)
        settings = settings.model_copy(update={"prefetch_input": "gomod"})
        BuildContainerBuilder(settings, caps).execute()
        assert scripted.calls_to("cachi2") == []

    def test_digest_failure_tolerated(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """A failed digest lookup should still record the reused image."""
        scripted.on("skopeo", "inspect", "--raw", exit_status=0)
        scripted.on("skopeo", "inspect", f"docker://{IMAGE}", exit_status=1)
        result = BuildContainerBuilder(settings, caps).execute()

        assert result.image_digest == ""
        results = read_results(settings.results_path)
        assert results["build"] == "false"
        assert results["commit"] == SHA
        assert results["url"] == GIT_URL
        assert results["IMAGE_URL"] == IMAGE
        assert results["IMAGE_DIGEST"] == ""

    def test_digest_not_json(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """Unparseable inspect output should yield an empty digest."""
        scripted.on("skopeo", "inspect", "--raw", exit_status=0)
        scripted.on("skopeo", "inspect", f"docker://{IMAGE}", stdout="not json")
        BuildContainerBuilder(settings, caps).execute()
        results = read_results(settings.results_path)
        assert results["build"] == "false"
        assert results["IMAGE_DIGEST"] == ""


class TestFailures:
    """Tests for fatal and tolerated failures."""

    def test_missing_image_url(
        self, fake: FakeInvoker, tmp_path: Path, caps: Capabilities
    ) -> None:
        """A missing destination should fail before any tool runs."""
        settings = BuildContainerSettings(
            git_url=GIT_URL, workspace_path=tmp_path, results_path=tmp_path / "r"
        )
        builder = BuildContainerBuilder(settings, caps)
        with pytest.raises(ConfigurationError, match="IMAGE_URL"):
            builder.execute()
        assert fake.calls == []
        assert builder.state is BuildState.FAILED
        assert builder.failed_at is BuildState.INIT

    def test_build_failure(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """A failed build should be fatal, not push and write no results."""
        scripted.on("unshare", exit_status=1, stderr="error building at STEP 3")
        builder = BuildContainerBuilder(settings, caps)
        with pytest.raises(PipelineError) as exc_info:
            builder.execute()

        assert exc_info.value.state == BuildState.BUILD_IMAGE.value
        assert isinstance(exc_info.value.__cause__, ExternalToolError)
        assert builder.failed_at is BuildState.BUILD_IMAGE
        assert scripted.calls_to("buildah", "push") == []
        assert not settings.results_path.exists()

    def test_push_failure(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """A failed push should be fatal."""
        scripted.on("buildah", "push", exit_status=125)
        builder = BuildContainerBuilder(settings, caps)
        with pytest.raises(PipelineError):
            builder.execute()
        assert builder.failed_at is BuildState.PUSH_IMAGE
        assert not settings.results_path.exists()

    def test_unresolvable_revision(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """An unknown revision should be fatal with the resolution cause."""
        scripted.on("git", "-C", str(settings.source_path), "fetch", exit_status=128)
        builder = BuildContainerBuilder(settings, caps)
        with pytest.raises(PipelineError) as exc_info:
            builder.execute()
        cause = exc_info.value.__cause__
        assert isinstance(cause, ResolutionError)
        assert cause.revision == "main"
        assert scripted.calls_to("unshare") == []

    def test_prefetch_failure(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """A failed prefetch should be fatal and skip the build."""
        scripted.on("cachi2", exit_status=1)
        settings = settings.model_copy(update={"prefetch_input": "gomod"})
        builder = BuildContainerBuilder(settings, caps)
        with pytest.raises(PipelineError):
            builder.execute()
        assert builder.failed_at is BuildState.PREFETCH_DEPS
        assert scripted.calls_to("unshare") == []

    def test_digest_failure_tolerated(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """A digest that cannot be resolved should be recorded as empty."""
        scripted.on("skopeo", "inspect", f"docker://{IMAGE}", exit_status=1)
        result = BuildContainerBuilder(settings, caps).execute()
        assert result.image_digest == ""
        assert read_results(settings.results_path)["IMAGE_DIGEST"] == ""

    def test_unparseable_digest_tolerated(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """Malformed inspect output should also mean an empty digest."""
        scripted.on("skopeo", "inspect", f"docker://{IMAGE}", stdout="garbage")
        assert BuildContainerBuilder(settings, caps).execute().image_digest == ""

    def test_cancellation_not_wrapped(
        self,
        scripted: FakeInvoker,
        settings: BuildContainerSettings,
        caps: Capabilities,
    ) -> None:
        """Cancellation during a step should propagate as-is."""
        scripted.on("unshare", error=CancellationError())
        builder = BuildContainerBuilder(settings, caps)
        with pytest.raises(CancellationError):
            builder.execute()
        assert builder.state is BuildState.FAILED
        assert not settings.results_path.exists()
