"""Monolithic builder - container image build orchestration for CI pipelines.

This package sequences the external tools of a container build task
(git, cachi2, buildah, skopeo) and records the task results consumed by
downstream pipeline steps.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
