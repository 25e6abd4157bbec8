"""Build-container orchestration.

Sequences one build-container run as a state machine:

    INIT -> CHECK_EXISTENCE -> CLONE_SOURCE
    CLONE_SOURCE -> SKIP_PATH | PREFETCH_DEPS | BUILD_IMAGE
    SKIP_PATH -> RESOLVE_DIGEST
    PREFETCH_DEPS -> BUILD_IMAGE -> PUSH_IMAGE -> RESOLVE_DIGEST
    RESOLVE_DIGEST -> WRITE_RESULTS -> DONE

Clone, prefetch, build and push failures are fatal. Existence-check and
digest failures fall back to "build required" and an empty digest. Results
are written only in WRITE_RESULTS, so a failed run leaves none behind.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

from monolithic_builder.errors import (
    AuthSetupError,
    ConfigurationError,
    ExternalToolError,
    ParseError,
    PipelineError,
)
from monolithic_builder.git.clone import CloneConfig, CloneResult, clone
from monolithic_builder.image.build import build_image, push_image
from monolithic_builder.image.models import BuildConfig, BuildResult
from monolithic_builder.image.registry import check_image_exists, get_image_digest
from monolithic_builder.pipeline import StateMachine
from monolithic_builder.prefetch.auth import materialize_credentials
from monolithic_builder.prefetch.cachi2 import PrefetchConfig, fetch_dependencies
from monolithic_builder.results import ResultWriter
from monolithic_builder.types import (
    RESULT_BUILD,
    RESULT_COMMIT,
    RESULT_IMAGE_DIGEST,
    RESULT_IMAGE_URL,
    RESULT_URL,
    BuildState,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from monolithic_builder.config import BuildContainerSettings
    from monolithic_builder.process import Capabilities


class BuildContainerBuilder(StateMachine[BuildState]):
    """Runs the build-container pipeline.

    Args:
        settings: Build-container settings.
        caps: Injected invoker, logger and clock.
        results: Result writer (defaults to one on settings.results_path).
        home: Home directory for credential files (defaults to the user's).
    """

    transitions = {
        BuildState.INIT: frozenset({BuildState.CHECK_EXISTENCE}),
        BuildState.CHECK_EXISTENCE: frozenset({BuildState.CLONE_SOURCE}),
        BuildState.CLONE_SOURCE: frozenset(
            {BuildState.SKIP_PATH, BuildState.PREFETCH_DEPS, BuildState.BUILD_IMAGE}
        ),
        BuildState.SKIP_PATH: frozenset({BuildState.RESOLVE_DIGEST}),
        BuildState.PREFETCH_DEPS: frozenset({BuildState.BUILD_IMAGE}),
        BuildState.BUILD_IMAGE: frozenset({BuildState.PUSH_IMAGE}),
        BuildState.PUSH_IMAGE: frozenset({BuildState.RESOLVE_DIGEST}),
        BuildState.RESOLVE_DIGEST: frozenset({BuildState.WRITE_RESULTS}),
        BuildState.WRITE_RESULTS: frozenset({BuildState.DONE}),
    }
    initial = BuildState.INIT
    done = BuildState.DONE
    failed = BuildState.FAILED

    def __init__(
        self,
        settings: BuildContainerSettings,
        caps: Capabilities,
        results: ResultWriter | None = None,
        home: Path | None = None,
    ) -> None:
        super().__init__(caps)
        self.settings = settings
        self.results = results or ResultWriter(settings.results_path)
        self.home = home
        self.build_required = True
        self.build_config: BuildConfig | None = None
        self.clone_result: CloneResult | None = None
        self.image_digest = ""

    def handlers(self) -> dict[BuildState, Callable[[], BuildState]]:
        return {
            BuildState.INIT: self._init,
            BuildState.CHECK_EXISTENCE: self._check_existence,
            BuildState.CLONE_SOURCE: self._clone_source,
            BuildState.SKIP_PATH: self._skip_path,
            BuildState.PREFETCH_DEPS: self._prefetch_deps,
            BuildState.BUILD_IMAGE: self._build_image,
            BuildState.PUSH_IMAGE: self._push_image,
            BuildState.RESOLVE_DIGEST: self._resolve_digest,
            BuildState.WRITE_RESULTS: self._write_results,
        }

    def execute(self) -> BuildResult:
        """Run the pipeline to completion.

        Returns:
            BuildResult with the image reference and (possibly empty) digest.

        Raises:
            ConfigurationError: If a required input is missing.
            PipelineError: If a fatal step failed; the cause is chained.
            CancellationError: If the run was cancelled.
        """
        s = self.settings
        self.logger.info(
            "Starting build-container: image_url=%s git_url=%s revision=%s",
            s.image_url,
            s.git_url,
            s.git_revision or "(default)",
        )
        self.run_machine()
        self.logger.info(
            "Build-container completed: image_url=%s image_digest=%s",
            s.image_url,
            self.image_digest or "(unknown)",
        )
        return BuildResult(image_url=s.image_url, image_digest=self.image_digest)

    @property
    def config(self) -> BuildConfig:
        if self.build_config is None:
            raise RuntimeError("Build configuration is not initialized")
        return self.build_config

    def _init(self) -> BuildState:
        s = self.settings
        missing = [
            name
            for name, value in (("IMAGE_URL", s.image_url), ("GIT_URL", s.git_url))
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required parameter(s): {', '.join(missing)}"
            )

        try:
            materialize_credentials(s.git_auth_path, s.netrc_path, home=self.home)
        except AuthSetupError as e:
            self.logger.warning("Failed to set up authentication: %s", e)

        source = s.source_path
        self.build_config = BuildConfig(
            image_url=s.image_url,
            dockerfile=str(source / s.dockerfile),
            context=str(source / s.context),
            hermetic=s.hermetic,
            prefetch_input=s.prefetch_input,
            prefetch_path=str(s.prefetch_path),
            image_expires_after=s.image_expires_after,
            build_args=tuple(s.build_args),
            build_args_file=s.build_args_file,
            tls_verify=s.tls_verify,
            rebuild=s.rebuild,
            skip_checks=s.skip_checks,
        )
        return BuildState.CHECK_EXISTENCE

    def _check_existence(self) -> BuildState:
        config = self.config
        self.logger.info(
            "Checking if image build is required: image_url=%s rebuild=%s skip_checks=%s",
            config.image_url,
            config.rebuild,
            config.skip_checks,
        )
        if config.rebuild or config.skip_checks:
            self.build_required = True
            return BuildState.CLONE_SOURCE

        try:
            exists = check_image_exists(self.invoker, config.image_url, config.tls_verify)
        except ExternalToolError as e:
            self.logger.warning(
                "Failed to check image existence, proceeding with build: %s", e
            )
            exists = False

        self.build_required = not exists
        return BuildState.CLONE_SOURCE

    def _clone_source(self) -> BuildState:
        s = self.settings
        self.logger.info("Cloning repository")
        with self.fatal("git clone failed"):
            self.clone_result = clone(
                self.invoker,
                CloneConfig(
                    url=s.git_url,
                    destination=s.source_path,
                    revision=s.git_revision,
                    refspec=s.git_refspec,
                    depth=s.git_depth,
                    submodules=s.git_submodules,
                ),
            )
        self.build_config = replace(self.config, commit_sha=self.clone_result.commit_sha)

        if not self.build_required:
            return BuildState.SKIP_PATH
        if self.config.prefetch_input:
            return BuildState.PREFETCH_DEPS
        return BuildState.BUILD_IMAGE

    def _skip_path(self) -> BuildState:
        self.logger.info(
            "Skipping build - image already exists and rebuild not requested"
        )
        return BuildState.RESOLVE_DIGEST

    def _prefetch_deps(self) -> BuildState:
        s = self.settings
        self.logger.info("Prefetching dependencies")
        with self.fatal("dependency prefetch failed"):
            fetch_dependencies(
                self.invoker,
                PrefetchConfig(
                    input=s.prefetch_input,
                    source_path=s.source_path,
                    prefetch_path=s.prefetch_path,
                    dev_package_managers=s.dev_package_managers,
                    log_level=s.effective_prefetch_log_level,
                    config_file_content=s.config_file_content,
                ),
            )
        return BuildState.BUILD_IMAGE

    def _build_image(self) -> BuildState:
        self.logger.info("Building container image")
        with self.fatal("container build failed"):
            build_image(self.invoker, self.config, now=self.caps.clock())
        return BuildState.PUSH_IMAGE

    def _push_image(self) -> BuildState:
        self.logger.info("Pushing image to registry")
        with self.fatal("image push failed"):
            push_image(self.invoker, self.config)
        return BuildState.RESOLVE_DIGEST

    def _resolve_digest(self) -> BuildState:
        config = self.config
        try:
            self.image_digest = get_image_digest(
                self.invoker, config.image_url, config.tls_verify
            )
        except (ExternalToolError, ParseError) as e:
            self.logger.warning("Failed to get image digest, using empty value: %s", e)
            self.image_digest = ""
        return BuildState.WRITE_RESULTS

    def _write_results(self) -> BuildState:
        clone_result = self.clone_result
        if clone_result is None:
            raise PipelineError("No clone result to record", state=self.state.value)
        with self.fatal("failed to write results"):
            self.results.write(RESULT_BUILD, "true" if self.build_required else "false")
            self.results.write(RESULT_COMMIT, clone_result.commit_sha)
            self.results.write(RESULT_URL, clone_result.url)
            self.results.write(RESULT_IMAGE_URL, self.config.image_url)
            self.results.write(RESULT_IMAGE_DIGEST, self.image_digest)
        return BuildState.DONE


__all__ = ["BuildContainerBuilder"]
