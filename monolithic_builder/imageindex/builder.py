"""Build-image-index orchestration.

Decides between assembling a manifest list and passing a single image
through:

    INIT -> DECIDE -> ASSEMBLE | PASS_THROUGH -> WRITE_RESULTS -> DONE

Assembly creates a local manifest list named ``<image>-index``, adds every
image in input order, pushes it, resolves its digest (best-effort) and
finally removes the local list. Removal runs only after a successful push
and its outcome is ignored.

The expiration duration is accepted and logged but never applied to the
pushed index.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from monolithic_builder.errors import (
    ConfigurationError,
    ExternalToolError,
    ParseError,
    PipelineError,
)
from monolithic_builder.image.commands import (
    BUILDAH,
    manifest_add_args,
    manifest_create_args,
    manifest_push_args,
    manifest_rm_args,
)
from monolithic_builder.image.models import BuildResult
from monolithic_builder.image.registry import get_image_digest
from monolithic_builder.pipeline import StateMachine
from monolithic_builder.results import ResultWriter
from monolithic_builder.types import RESULT_IMAGE_DIGEST, RESULT_IMAGE_URL, IndexState

if TYPE_CHECKING:
    from collections.abc import Callable

    from monolithic_builder.config import ImageIndexSettings
    from monolithic_builder.process import Capabilities

MANIFEST_SUFFIX = "-index"


def split_digest_reference(image_ref: str) -> tuple[str, str] | None:
    """Split ``repo@algorithm:hex`` into reference and digest.

    Returns:
        ``(reference, digest)``, or None if the reference has no digest.
    """
    reference, sep, digest = image_ref.partition("@")
    if not sep or not reference or not digest:
        return None
    return reference, digest


class ImageIndexBuilder(StateMachine[IndexState]):
    """Runs the build-image-index pipeline.

    Args:
        settings: Image index settings.
        caps: Injected invoker, logger and clock.
        results: Result writer (defaults to one on settings.results_path).
    """

    transitions = {
        IndexState.INIT: frozenset({IndexState.DECIDE}),
        IndexState.DECIDE: frozenset({IndexState.ASSEMBLE, IndexState.PASS_THROUGH}),
        IndexState.ASSEMBLE: frozenset({IndexState.WRITE_RESULTS}),
        IndexState.PASS_THROUGH: frozenset({IndexState.WRITE_RESULTS}),
        IndexState.WRITE_RESULTS: frozenset({IndexState.DONE}),
    }
    initial = IndexState.INIT
    done = IndexState.DONE
    failed = IndexState.FAILED

    def __init__(
        self,
        settings: ImageIndexSettings,
        caps: Capabilities,
        results: ResultWriter | None = None,
    ) -> None:
        super().__init__(caps)
        self.settings = settings
        self.results = results or ResultWriter(settings.results_path)
        self.result_image_url = ""
        self.result_image_digest = ""
        self.cleanup_attempts = 0

    @property
    def manifest_name(self) -> str:
        return f"{self.settings.image_url}{MANIFEST_SUFFIX}"

    @property
    def should_build_index(self) -> bool:
        return self.settings.always_build_index or len(self.settings.images) > 1

    def handlers(self) -> dict[IndexState, Callable[[], IndexState]]:
        return {
            IndexState.INIT: self._init,
            IndexState.DECIDE: self._decide,
            IndexState.ASSEMBLE: self._assemble,
            IndexState.PASS_THROUGH: self._pass_through,
            IndexState.WRITE_RESULTS: self._write_results,
        }

    def execute(self) -> BuildResult:
        """Run the pipeline to completion.

        Returns:
            BuildResult with the resulting reference and (possibly empty)
            digest.

        Raises:
            ConfigurationError: If no images were given.
            PipelineError: If assembling or pushing the index failed.
            CancellationError: If the run was cancelled.
        """
        s = self.settings
        self.logger.info(
            "Starting build-image-index: image_url=%s images=%s always_build_index=%s",
            s.image_url,
            s.images,
            s.always_build_index,
        )
        self.run_machine()
        self.logger.info(
            "Build-image-index completed: image_url=%s image_digest=%s",
            self.result_image_url,
            self.result_image_digest or "(unknown)",
        )
        return BuildResult(
            image_url=self.result_image_url, image_digest=self.result_image_digest
        )

    def _init(self) -> IndexState:
        s = self.settings
        if not s.images:
            raise ConfigurationError("No images provided for index creation")
        if self.should_build_index and not s.image_url:
            raise ConfigurationError("Missing required parameter: IMAGE")
        if s.image_expires_after:
            self.logger.info(
                "Image expiration %r requested; not applied to image indexes",
                s.image_expires_after,
            )
        return IndexState.DECIDE

    def _decide(self) -> IndexState:
        if self.should_build_index:
            self.logger.info("Building multi-architecture image index")
            return IndexState.ASSEMBLE
        self.logger.info("Single image provided, extracting details")
        return IndexState.PASS_THROUGH

    def _resolve_digest(self, image_url: str) -> str:
        try:
            return get_image_digest(self.invoker, image_url, self.settings.tls_verify)
        except (ExternalToolError, ParseError) as e:
            self.logger.warning("Failed to get image digest, using empty value: %s", e)
            return ""

    def _pass_through(self) -> IndexState:
        image_ref = self.settings.images[0]
        split = split_digest_reference(image_ref)
        if split is not None:
            self.result_image_url, self.result_image_digest = split
        else:
            self.result_image_url = image_ref
            self.result_image_digest = self._resolve_digest(image_ref)
        return IndexState.WRITE_RESULTS

    def _buildah(self, args: list[str]) -> None:
        self.invoker.invoke(BUILDAH, args, stream=True).check()

    def _assemble(self) -> IndexState:
        s = self.settings
        name = self.manifest_name

        self.logger.info("Creating image manifest: %s", name)
        with self.fatal("failed to create manifest"):
            self._buildah(manifest_create_args(name))

        for image_ref in s.images:
            self.logger.info("Adding image to manifest: %s", image_ref)
            with self.fatal(f"failed to add image {image_ref} to manifest"):
                self._buildah(manifest_add_args(name, image_ref, s.tls_verify))

        self.logger.info("Pushing image index to registry")
        with self.fatal("failed to push manifest"):
            self._buildah(manifest_push_args(name, s.image_url, s.tls_verify))

        self.result_image_url = s.image_url
        self.result_image_digest = self._resolve_digest(s.image_url)
        self._remove_manifest(name)
        return IndexState.WRITE_RESULTS

    def _remove_manifest(self, name: str) -> None:
        """Remove the local manifest list; the result is already pushed."""
        self.cleanup_attempts += 1
        try:
            result = self.invoker.invoke(BUILDAH, manifest_rm_args(name))
        except ExternalToolError as e:
            self.logger.debug("Ignoring manifest cleanup failure: %s", e)
            return
        if not result.ok:
            self.logger.debug(
                "Ignoring manifest cleanup failure (exit %d)", result.exit_status
            )

    def _write_results(self) -> IndexState:
        if not self.result_image_url:
            raise PipelineError("No image reference to record", state=self.state.value)
        with self.fatal("failed to write results"):
            self.results.write(RESULT_IMAGE_URL, self.result_image_url)
            self.results.write(RESULT_IMAGE_DIGEST, self.result_image_digest)
        return IndexState.DONE


__all__ = ["ImageIndexBuilder", "MANIFEST_SUFFIX", "split_digest_reference"]
