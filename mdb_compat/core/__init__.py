"""
Core MDB_COMPAT components.
"""

from .context import CompatContext

__all__ = ["CompatContext"]
