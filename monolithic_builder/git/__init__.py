"""Version control module.

This module handles:
- Cloning the source repository with git
- Ordered revision resolution (commit, branch, tag)
- Submodule materialization
"""

from monolithic_builder.git.clone import CloneConfig, CloneResult, clone
from monolithic_builder.git.revision import ResolvedRevision, RevisionResolver

__all__ = ["CloneConfig", "CloneResult", "ResolvedRevision", "RevisionResolver", "clone"]
