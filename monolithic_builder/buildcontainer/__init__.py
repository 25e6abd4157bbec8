"""Build-container pipeline: clone, prefetch, build, push, record results."""

from monolithic_builder.buildcontainer.builder import BuildContainerBuilder

__all__ = ["BuildContainerBuilder"]
