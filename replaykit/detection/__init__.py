# replaykit/detection/__init__.py
"""
Detection package
-----------------
Visibility gate and iframe/shadow boundary discovery.
"""

from .visibility import is_hidden_style, is_visible
from .boundaries import BoundaryIndex, KnownScope, hosts_in_scope

__all__ = [
    "is_hidden_style",
    "is_visible",
    "BoundaryIndex",
    "KnownScope",
    "hosts_in_scope",
]
