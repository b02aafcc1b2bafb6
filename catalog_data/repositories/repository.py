"""
Generic repository interface (Abstract Base Class).

Defines the uniform data access contract every catalog entity type
shares, independent of the underlying store.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, Iterable, Optional, TypeVar

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    """
    Abstract repository interface for one entity type.

    Committing write operations never raise on a persistence conflict;
    they return -1 and leave a diagnostic behind instead. Passing None
    where an entity or collection is expected always raises.
    """

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @abstractmethod
    def get_all(self) -> Iterable[T]:
        """Return a queryable view of all entities."""
        pass

    @abstractmethod
    def get_all_no_tracking(self) -> Iterable[T]:
        """Return a queryable view whose results are never tracked."""
        pass

    @abstractmethod
    def any(self, predicate: Any) -> bool:
        """
        Check whether any entity satisfies a predicate.

        Args:
            predicate: Selection expression

        Returns:
            True if at least one entity matches
        """
        pass

    @abstractmethod
    def get(self, predicate: Any, *includes: Any) -> Optional[T]:
        """
        Get the first entity matching a predicate.

        Args:
            predicate: Selection expression
            *includes: Related data to load eagerly

        Returns:
            Matching entity or None
        """
        pass

    @abstractmethod
    async def get_async(self, predicate: Any, *includes: Any) -> Optional[T]:
        """Asynchronous variant of get."""
        pass

    @abstractmethod
    def get_by_id(self, entity_id: int) -> Optional[T]:
        """Get an entity by identifier, None if it does not exist."""
        pass

    @abstractmethod
    async def get_by_id_async(self, entity_id: int) -> Optional[T]:
        """Asynchronous variant of get_by_id."""
        pass

    @abstractmethod
    def get_many(self, predicate: Any, *includes: Any) -> Iterable[T]:
        """
        Get all entities matching a predicate.

        Args:
            predicate: Selection expression
            *includes: Related data to load eagerly

        Returns:
            Lazy sequence; every iteration re-queries the store
        """
        pass

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @abstractmethod
    def insert(self, entity: T) -> T:
        """
        Add an entity and commit.

        Args:
            entity: Entity to persist

        Returns:
            The same entity with its identifier populated
        """
        pass

    @abstractmethod
    async def insert_async(self, entity: T) -> T:
        """Asynchronous variant of insert."""
        pass

    @abstractmethod
    def insert_without_commit(self, entity: T) -> T:
        """Add an entity to the pending change set only."""
        pass

    @abstractmethod
    def insert_bulk(self, entities: Iterable[T]) -> int:
        """
        Add several entities and commit once.

        Returns:
            Number of entities written, -1 on conflict
        """
        pass

    @abstractmethod
    def update(self, entity: T) -> int:
        """
        Replace an entity's record and commit.

        Returns:
            1 on success, -1 on failure
        """
        pass

    @abstractmethod
    async def update_async(self, entity: T) -> int:
        """Asynchronous variant of update."""
        pass

    @abstractmethod
    def update_without_commit(self, entity: T) -> int:
        """Register an entity as modified only; 1 on success, -1 on failure."""
        pass

    @abstractmethod
    def delete(self, entity: T) -> int:
        """
        Remove an entity and commit.

        Returns:
            Number of entities written, -1 on conflict
        """
        pass

    @abstractmethod
    async def delete_async(self, entity: T) -> int:
        """Asynchronous variant of delete."""
        pass

    @abstractmethod
    def delete_bulk(self, entities: Iterable[T]) -> int:
        """Remove several entities and commit once."""
        pass

    @abstractmethod
    def remove(self, entity: T) -> int:
        """Register an entity as removed only; 1 on success, -1 on failure."""
        pass

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @abstractmethod
    def commit(self) -> int:
        """
        Flush the pending change set.

        Returns:
            Number of entities written, -1 on conflict
        """
        pass

    @abstractmethod
    async def commit_async(self) -> int:
        """Asynchronous variant of commit."""
        pass
