"""Container image module.

This module handles:
- Duration parsing for expiration labels
- buildah/skopeo argument composition
- Build, push and registry probes

Access submodules directly, e.g. monolithic_builder.image.commands.
"""

from monolithic_builder.image.models import BuildConfig, BuildResult

__all__ = ["BuildConfig", "BuildResult"]
