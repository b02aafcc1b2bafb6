"""
Persistence layer - unit-of-work handle over the store.
"""

from .context import EntityEntry, EntityState, PersistentContext

__all__ = ["EntityEntry", "EntityState", "PersistentContext"]
