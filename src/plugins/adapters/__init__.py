"""
Resource adapter plugins.

Adapters translate managed resources into provider calls for one kind.
Third-party adapters are discovered via entry points (group:
'converge.adapters').
"""

from plugins.adapters.base import ResourceAdapter

__all__ = ["ResourceAdapter"]
