"""
SQLAlchemy implementation of the generic repository.

One Repository instance wraps one entity type's slice of a shared
PersistentContext. Predicates are SQLAlchemy boolean expressions
(``Fuel.name == "Diesel"``); include paths are relationship attributes
(``Ban.media``), relationship names, or ready-made loader options.
"""

import asyncio
import time
import traceback
from typing import Any, Generic, Iterable, Iterator, List, Optional, Type, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.exc import DataError, IntegrityError, InvalidRequestError, SQLAlchemyError
from sqlalchemy.orm import QueryableAttribute, selectinload
from sqlalchemy.orm.exc import StaleDataError

from ..domain.exceptions import (
    InvalidArgumentException,
    PersistenceConflictException,
    RecoveryFailureException,
)
from ..logging_config import get_logger
from ..metrics import track_commit, track_recovery
from ..persistence.context import EntityState, PersistentContext
from .repository import IRepository

logger = get_logger(__name__)

T = TypeVar("T")

# Store errors a commit absorbs: constraint violations and row-count
# (concurrency) mismatches.
PERSISTENCE_CONFLICT_ERRORS = (IntegrityError, DataError, StaleDataError)


def format_exception(exception: BaseException) -> str:
    """Render an exception with its traceback and chained causes."""
    return "".join(
        traceback.format_exception(type(exception), exception, exception.__traceback__)
    )


class QueryView(Generic[T]):
    """
    Lazy, restartable view over an entity select.

    Nothing is executed until the view is iterated or materialized, and
    every iteration runs the statement again.
    """

    def __init__(self, context: PersistentContext, statement: Select, tracking: bool = True):
        self._context = context
        self._statement = statement
        self._tracking = tracking

    @property
    def statement(self) -> Select:
        return self._statement

    @property
    def tracking(self) -> bool:
        return self._tracking

    def _derive(self, statement: Select) -> "QueryView[T]":
        return QueryView(self._context, statement, self._tracking)

    def where(self, *criteria: Any) -> "QueryView[T]":
        return self._derive(self._statement.where(*criteria))

    def include(self, *paths: Any) -> "QueryView[T]":
        """Eagerly load the given related data with each entity."""
        statement = self._statement
        for path in paths:
            statement = statement.options(self._loader_option(path))
        return self._derive(statement)

    def order_by(self, *clauses: Any) -> "QueryView[T]":
        return self._derive(self._statement.order_by(*clauses))

    def limit(self, count: int) -> "QueryView[T]":
        return self._derive(self._statement.limit(count))

    def offset(self, count: int) -> "QueryView[T]":
        return self._derive(self._statement.offset(count))

    def all(self) -> List[T]:
        return self._context.query(self._statement, tracking=self._tracking)

    def first(self) -> Optional[T]:
        results = self._context.query(self._statement.limit(1), tracking=self._tracking)
        return results[0] if results else None

    def count(self) -> int:
        subquery = self._statement.order_by(None).subquery()
        return self._context.scalar(select(func.count()).select_from(subquery))

    def exists(self) -> bool:
        return bool(self._context.scalar(select(self._statement.exists())))

    def __iter__(self) -> Iterator[T]:
        return iter(self.all())

    def _loader_option(self, path: Any) -> Any:
        if isinstance(path, str):
            entity = self._statement.column_descriptions[0]["entity"]
            return selectinload(getattr(entity, path))
        if isinstance(path, QueryableAttribute):
            return selectinload(path)
        return path

    def __repr__(self) -> str:
        mode = "tracking" if self._tracking else "no-tracking"
        return f"<QueryView {mode} {self._statement}>"


class Repository(IRepository[T]):
    """
    Transactional repository for one entity type.

    Every committing write returns -1 on a persistence conflict instead of
    raising. The conflict is recovered from locally (tracked inserts and
    updates are reset, then a trivial commit is attempted) and the
    diagnostic text is kept in ``last_error``.
    """

    def __init__(self, context: PersistentContext, model: Type[T]):
        """
        Initialize repository.

        Args:
            context: Persistent context shared by the unit of work
            model: Mapped entity class this repository serves
        """
        self.context = context
        self.model = model
        self.last_error: Optional[str] = None
        self.last_exception: Optional[Exception] = None

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    def _entities(self) -> Select:
        return self.context.set(self.model)

    def _require(self, value: Any, argument: str, operation: str) -> None:
        if value is None:
            raise InvalidArgumentException(argument, f"{self.entity_name}.{operation}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_all(self) -> QueryView[T]:
        return QueryView(self.context, self._entities())

    def get_all_no_tracking(self) -> QueryView[T]:
        return QueryView(self.context, self._entities(), tracking=False)

    def any(self, predicate: Any) -> bool:
        return self.get_all().where(predicate).exists()

    def get(self, predicate: Any, *includes: Any) -> Optional[T]:
        return self.get_many(predicate, *includes).first()

    async def get_async(self, predicate: Any, *includes: Any) -> Optional[T]:
        return await asyncio.to_thread(self.get, predicate, *includes)

    def get_by_id(self, entity_id: int) -> Optional[T]:
        return self.get_all().where(self.model.id == entity_id).first()

    async def get_by_id_async(self, entity_id: int) -> Optional[T]:
        return await asyncio.to_thread(self.get_by_id, entity_id)

    def get_many(self, predicate: Any, *includes: Any) -> QueryView[T]:
        return self.get_all().where(predicate).include(*includes)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, entity: T) -> T:
        self._require(entity, "entity", "insert")
        self.context.add(entity)
        self.commit()
        return entity

    async def insert_async(self, entity: T) -> T:
        self._require(entity, "entity", "insert_async")
        self.context.add(entity)
        await self.commit_async()
        return entity

    def insert_without_commit(self, entity: T) -> T:
        self._require(entity, "entity", "insert_without_commit")
        self.context.add(entity)
        return entity

    def insert_bulk(self, entities: Iterable[T]) -> int:
        self._require(entities, "entities", "insert_bulk")
        self.context.add_range(list(entities))
        return self.commit()

    def update(self, entity: T) -> int:
        self._require(entity, "entity", "update")
        if self.update_without_commit(entity) == -1:
            return -1
        return 1 if self.commit() != -1 else -1

    async def update_async(self, entity: T) -> int:
        self._require(entity, "entity", "update_async")
        if self.update_without_commit(entity) == -1:
            return -1
        return 1 if await self.commit_async() != -1 else -1

    def update_without_commit(self, entity: T) -> int:
        self._require(entity, "entity", "update_without_commit")
        try:
            self.context.update(entity)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to register update", entity=self.entity_name, error=str(e)
            )
            return -1
        return 1

    def delete(self, entity: T) -> int:
        self._require(entity, "entity", "delete")
        self.context.remove(entity)
        return self.commit()

    async def delete_async(self, entity: T) -> int:
        self._require(entity, "entity", "delete_async")
        self.context.remove(entity)
        return await self.commit_async()

    def delete_bulk(self, entities: Iterable[T]) -> int:
        self._require(entities, "entities", "delete_bulk")
        self.context.remove_range(list(entities))
        return self.commit()

    def remove(self, entity: T) -> int:
        self._require(entity, "entity", "remove")
        try:
            self.context.remove(entity)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to register removal", entity=self.entity_name, error=str(e)
            )
            return -1
        return 1

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def commit(self) -> int:
        started = time.perf_counter()
        try:
            affected = self.context.save_changes()
        except PERSISTENCE_CONFLICT_ERRORS as e:
            self._handle_conflict(e, started)
            return -1
        except SQLAlchemyError:
            self._abandon_unit_of_work(started)
            raise

        self._commit_succeeded(affected, started)
        return affected

    async def commit_async(self) -> int:
        started = time.perf_counter()
        try:
            affected = await self.context.save_changes_async()
        except PERSISTENCE_CONFLICT_ERRORS as e:
            await asyncio.to_thread(self._handle_conflict, e, started)
            return -1
        except SQLAlchemyError:
            await asyncio.to_thread(self._abandon_unit_of_work, started)
            raise

        self._commit_succeeded(affected, started)
        return affected

    def _abandon_unit_of_work(self, started: float) -> None:
        logger.error("Commit failed, discarding pending changes", entity=self.entity_name)
        track_commit(self.entity_name, "error", time.perf_counter() - started)
        self.context.rollback()

    def _commit_succeeded(self, affected: int, started: float) -> None:
        self.last_error = None
        self.last_exception = None
        track_commit(self.entity_name, "success", time.perf_counter() - started, affected)

    def _handle_conflict(self, exception: Exception, started: float) -> None:
        logger.warning(
            "Persistence conflict on commit",
            entity=self.entity_name,
            error_type=type(exception).__name__,
            error=str(exception),
        )
        self.last_exception = PersistenceConflictException(self.entity_name, exception)
        self._rollback_entity_changes(exception)

        outcome = (
            "recovery_failed"
            if isinstance(self.last_exception, RecoveryFailureException)
            else "conflict"
        )
        track_commit(self.entity_name, outcome, time.perf_counter() - started)

    def _rollback_entity_changes(self, exception: Exception) -> str:
        """
        Reset tracked inserts and updates after a failed commit.

        Every entry the failed flush held as added or modified is forced
        back to unchanged, then a second commit is attempted so the context
        ends up consistent with the store.

        Args:
            exception: Error raised by the failed commit

        Returns:
            Full text of the original error, or of the second commit's
            error if that one failed too
        """
        track_recovery(self.entity_name)
        entries = self.context.entries(EntityState.ADDED, EntityState.MODIFIED)

        for entry in entries:
            try:
                self.context.mark_unchanged(entry)
            except InvalidRequestError as e:
                logger.debug(
                    "Could not reset tracked entry",
                    entity=self.entity_name,
                    instance=repr(entry.entity),
                    error=str(e),
                )

        try:
            self.context.save_changes()
            diagnostic = format_exception(exception)
        except Exception as e:
            self.last_exception = RecoveryFailureException(self.entity_name, e)
            diagnostic = format_exception(e)

        self.last_error = diagnostic
        logger.warning(
            "Rolled back entity changes",
            entity=self.entity_name,
            reset_entries=len(entries),
            recovered=not isinstance(self.last_exception, RecoveryFailureException),
            diagnostic=diagnostic,
        )
        return diagnostic

    def __repr__(self) -> str:
        return f"<Repository {self.entity_name}>"
