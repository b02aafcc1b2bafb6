"""
Catalog data-access layer.

Provides a generic transactional repository over a SQLAlchemy session
for the catalog entities (bans, cities, fuels, media).
"""

from .persistence.context import EntityEntry, EntityState, PersistentContext
from .repositories.sqlalchemy_repository import QueryView, Repository

__version__ = "1.0.0"

__all__ = [
    "EntityEntry",
    "EntityState",
    "PersistentContext",
    "QueryView",
    "Repository",
]
