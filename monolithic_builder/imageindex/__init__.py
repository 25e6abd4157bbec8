"""Build-image-index pipeline: assemble per-architecture images into one index."""

from monolithic_builder.imageindex.builder import ImageIndexBuilder

__all__ = ["ImageIndexBuilder"]
