"""
Repository layer - Data access abstractions.

This layer provides the uniform repository contract for every catalog
entity type, hiding the store's session handling from callers.
"""

from .repository import IRepository
from .sqlalchemy_repository import PERSISTENCE_CONFLICT_ERRORS, QueryView, Repository

__all__ = ["IRepository", "PERSISTENCE_CONFLICT_ERRORS", "QueryView", "Repository"]
