"""Dependency prefetch module.

This module handles:
- Running cachi2 to materialize declared build dependencies
- Copying mounted credentials for private dependency sources
"""

from monolithic_builder.prefetch.auth import materialize_credentials
from monolithic_builder.prefetch.cachi2 import PrefetchConfig, fetch_dependencies

__all__ = ["PrefetchConfig", "fetch_dependencies", "materialize_credentials"]
