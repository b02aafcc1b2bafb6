"""
Persistent context over a SQLAlchemy session.

The context is the single owner of the pending change set for one unit of
work. Repositories register entities here and flush through
``save_changes``; they never talk to the session directly.
"""

import asyncio
import warnings
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Type

from sqlalchemy import Select, inspect, select
from sqlalchemy.exc import SAWarning
from sqlalchemy.orm import Session, make_transient_to_detached
from sqlalchemy.orm.attributes import flag_modified, set_committed_value
from sqlalchemy.orm.exc import StaleDataError

from ..logging_config import get_logger

logger = get_logger(__name__)

# SQLAlchemy only warns when a DELETE without a version column matches fewer
# rows than expected.
UNMATCHED_DELETE_WARNING = r"DELETE statement on table .* expected to delete"


class EntityState(str, Enum):
    """Lifecycle state of an entity as seen by the context."""

    DETACHED = "detached"
    UNCHANGED = "unchanged"
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass
class EntityEntry:
    """
    A tracked entity together with its state.

    Attributes:
        entity: The tracked instance
        state: Lifecycle state at capture time
        values: Column values held in memory at capture time
    """

    entity: Any
    state: EntityState
    values: Dict[str, Any] = field(default_factory=dict)


class PersistentContext:
    """
    Unit-of-work handle wrapping one SQLAlchemy session.

    Not safe for concurrent use: one context belongs to one logical unit of
    work, and repositories sharing it must be used sequentially.
    """

    def __init__(self, session: Session):
        """
        Initialize the context.

        Args:
            session: SQLAlchemy session owning the identity map
        """
        self.session = session
        # SQLAlchemy reverts its own bookkeeping when a flush fails, so the
        # change set of the failed flush is kept here until the next flush.
        self._failed_change_set: Optional[List[EntityEntry]] = None

    # ------------------------------------------------------------------
    # Collection views and queries
    # ------------------------------------------------------------------

    def set(self, entity_type: Type[Any]) -> Select:
        """Return the base select for all entities of a type."""
        return select(entity_type)

    def query(self, statement: Select, tracking: bool = True) -> List[Any]:
        """
        Execute an entity select.

        Args:
            statement: Select returning mapped entities
            tracking: Register results in the identity map of this context

        Returns:
            List of entities; detached when ``tracking`` is False
        """
        if tracking:
            return list(self.session.scalars(statement))

        with self.detached_reader() as reader:
            return list(reader.scalars(statement))

    def scalar(self, statement: Select) -> Any:
        """Execute a select returning a single scalar value."""
        return self.session.scalar(statement)

    @contextmanager
    def detached_reader(self) -> Iterator[Session]:
        """
        Yield a throw-away session joined to this context's connection.

        Entities loaded through it are detached once the block exits, so
        mutating them never reaches a later commit.
        """
        reader = Session(
            bind=self.session.connection(),
            autoflush=False,
            expire_on_commit=False,
        )
        try:
            yield reader
        finally:
            reader.close()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add(self, entity: Any) -> None:
        """Register an entity as added."""
        self.session.add(entity)

    def add_range(self, entities: Iterable[Any]) -> None:
        """Register several entities as added."""
        self.session.add_all(entities)

    def update(self, entity: Any) -> None:
        """
        Register an entity as modified, replacing the whole record.

        A transient entity that carries an identity is attached without a
        round-trip and all of its loaded columns are flagged, so the flush
        emits an UPDATE matching on the identity. A transient entity
        without identity is registered as added.
        """
        state = inspect(entity)
        if state.pending:
            return

        if state.transient:
            if not self._has_identity(entity):
                self.session.add(entity)
                return
            make_transient_to_detached(entity)

        if state.session is not self.session:
            self.session.add(entity)

        for prop in state.mapper.column_attrs:
            if prop.key in state.dict and not self._is_primary_key(prop):
                flag_modified(entity, prop.key)

    def remove(self, entity: Any) -> None:
        """
        Register an entity as removed.

        Removing an entity that is still pending cancels its insert. A
        transient entity without identity has no record to remove and is
        ignored.
        """
        state = inspect(entity)
        if state.pending:
            self.session.expunge(entity)
            return

        if state.transient:
            if not self._has_identity(entity):
                logger.debug("Ignoring removal of unsaved entity", instance=repr(entity))
                return
            make_transient_to_detached(entity)

        self.session.delete(entity)

    def remove_range(self, entities: Iterable[Any]) -> None:
        """Register several entities as removed."""
        for entity in entities:
            self.remove(entity)

    # ------------------------------------------------------------------
    # Change tracking
    # ------------------------------------------------------------------

    def state_of(self, entity: Any) -> EntityState:
        """Return the current lifecycle state of an entity."""
        if entity in self.session.new:
            return EntityState.ADDED
        if entity in self.session.deleted:
            return EntityState.DELETED

        state = inspect(entity)
        if state.persistent and state.session is self.session:
            if self.session.is_modified(entity):
                return EntityState.MODIFIED
            return EntityState.UNCHANGED
        return EntityState.DETACHED

    def entries(self, *states: EntityState) -> List[EntityEntry]:
        """
        Enumerate the pending change set.

        After a failed flush this is the change set that flush attempted.

        Args:
            *states: Restrict to these states; all when empty

        Returns:
            Tracked entries
        """
        if self._failed_change_set is not None:
            change_set = self._failed_change_set
        else:
            change_set = self._capture_change_set()

        if not states:
            return list(change_set)
        return [entry for entry in change_set if entry.state in states]

    def mark_unchanged(self, entry: EntityEntry) -> None:
        """
        Force an entry back to the unmodified state.

        The local record of the pending write is discarded; the entity keeps
        the field values it held in memory.
        """
        self._reset_failed_transaction()
        entity = entry.entity

        if entry.state is EntityState.ADDED:
            if entity in self.session:
                self.session.expunge(entity)
            return

        for key, value in entry.values.items():
            set_committed_value(entity, key, value)

    @property
    def has_changes(self) -> bool:
        """Whether anything is waiting to be flushed."""
        return bool(self._capture_change_set())

    # ------------------------------------------------------------------
    # Flush
    # ------------------------------------------------------------------

    def save_changes(self) -> int:
        """
        Flush the pending change set in one transaction.

        Returns:
            Number of entities written

        Raises:
            sqlalchemy.exc.SQLAlchemyError: When the store rejects the flush
        """
        self._failed_change_set = None
        self._reset_failed_transaction()

        change_set = self._capture_change_set()
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings(
                    "error", message=UNMATCHED_DELETE_WARNING, category=SAWarning
                )
                self.session.commit()
        except SAWarning as e:
            self._failed_change_set = change_set
            raise StaleDataError(str(e)) from e
        except Exception:
            self._failed_change_set = change_set
            raise

        logger.debug("Changes saved", entities=len(change_set))
        return len(change_set)

    async def save_changes_async(self) -> int:
        """Flush the pending change set without blocking the event loop."""
        return await asyncio.to_thread(self.save_changes)

    def rollback(self) -> None:
        """Discard the pending change set and end the current transaction."""
        self._failed_change_set = None
        self.session.rollback()

    def close(self) -> None:
        """Close the underlying session."""
        self._failed_change_set = None
        self.session.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _capture_change_set(self) -> List[EntityEntry]:
        entries = [
            EntityEntry(entity, EntityState.ADDED, self._snapshot(entity))
            for entity in self.session.new
        ]
        entries.extend(
            EntityEntry(entity, EntityState.MODIFIED, self._snapshot(entity))
            for entity in self.session.dirty
            if self.session.is_modified(entity)
        )
        entries.extend(
            EntityEntry(entity, EntityState.DELETED, self._snapshot(entity))
            for entity in self.session.deleted
        )
        return entries

    def _reset_failed_transaction(self) -> None:
        # a failed flush leaves the session inactive until rollback()
        if not self.session.is_active:
            self.session.rollback()

    @staticmethod
    def _snapshot(entity: Any) -> Dict[str, Any]:
        state = inspect(entity)
        return {
            prop.key: state.dict[prop.key]
            for prop in state.mapper.column_attrs
            if prop.key in state.dict
        }

    @staticmethod
    def _has_identity(entity: Any) -> bool:
        identity = inspect(entity).mapper.primary_key_from_instance(entity)
        return all(value is not None for value in identity)

    @staticmethod
    def _is_primary_key(prop: Any) -> bool:
        return any(column.primary_key for column in prop.columns)
