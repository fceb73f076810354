"""
Entity store adapter.

Services never touch the session directly: they receive an ``EntityStore``
and work in terms of create / get / query / update / delete over ORM
entities. ``SQLAlchemyEntityStore`` is the production implementation on top
of the request's ``AsyncSession``.

Reads always refresh from the database (``populate_existing``) so that
authorization decisions and optimistic-lock versions are never served from a
stale identity map.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager, contextmanager
from typing import Any, Protocol, TypeVar
from uuid import UUID

from sqlalchemy import delete as sa_delete
from sqlalchemy import func, select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from vantage.core.exceptions import ConcurrencyConflict, DependencyUnavailable, NotFound
from vantage.models.base import Base

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Base)


class EntityStore(Protocol):
    """Storage contract consumed by the services."""

    async def create(self, model: type[E], **fields: Any) -> E: ...

    async def get(self, model: type[E], entity_id: UUID) -> E | None: ...

    async def get_by(self, model: type[E], **filters: Any) -> E | None: ...

    async def query(
        self,
        model: type[E],
        *,
        order_by: Sequence[str] = (),
        **filters: Any,
    ) -> list[E]: ...

    async def count(self, model: type[E], **filters: Any) -> int: ...

    async def update(
        self,
        model: type[E],
        entity_id: UUID,
        *,
        expected_version: int | None = None,
        **fields: Any,
    ) -> E: ...

    async def delete(self, model: type[E], entity_id: UUID) -> None: ...

    def savepoint(self) -> AbstractAsyncContextManager[None]: ...


def _criteria(model: type[Base], filters: dict[str, Any]) -> list[Any]:
    """Equality filters; list / tuple / set values become ``IN``."""
    clauses = []
    for name, value in filters.items():
        column = getattr(model, name)
        if isinstance(value, (list, tuple, set, frozenset)):
            clauses.append(column.in_(list(value)))
        elif value is None:
            clauses.append(column.is_(None))
        else:
            clauses.append(column == value)
    return clauses


def _ordering(model: type[Base], order_by: Sequence[str]) -> list[Any]:
    ordering = []
    for name in order_by:
        if name.startswith("-"):
            ordering.append(getattr(model, name[1:]).desc())
        else:
            ordering.append(getattr(model, name))
    return ordering


class SQLAlchemyEntityStore:
    """EntityStore backed by an ``AsyncSession`` (PostgreSQL in production)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @contextmanager
    def _translate_errors(self, operation: str, model: type[Base]) -> Iterator[None]:
        try:
            yield
        except IntegrityError as exc:
            logger.info("%s %s violated a constraint: %s", operation, model.__name__, exc.orig)
            raise ConcurrencyConflict(
                f"{model.__name__} conflicts with an existing record",
            ) from exc
        except SQLAlchemyError as exc:
            logger.error("%s %s failed: %s", operation, model.__name__, exc)
            raise DependencyUnavailable("Entity store is unavailable") from exc

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    async def get(self, model: type[E], entity_id: UUID) -> E | None:
        with self._translate_errors("get", model):
            return await self.session.get(model, entity_id, populate_existing=True)

    async def get_by(self, model: type[E], **filters: Any) -> E | None:
        """Single-row lookup; callers pass uniquely indexed columns only."""
        stmt = (
            select(model)
            .where(*_criteria(model, filters))
            .execution_options(populate_existing=True)
        )
        with self._translate_errors("get_by", model):
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

    async def query(
        self,
        model: type[E],
        *,
        order_by: Sequence[str] = (),
        **filters: Any,
    ) -> list[E]:
        stmt = (
            select(model)
            .where(*_criteria(model, filters))
            .order_by(*_ordering(model, order_by))
            .execution_options(populate_existing=True)
        )
        with self._translate_errors("query", model):
            result = await self.session.execute(stmt)
            return list(result.scalars().all())

    async def count(self, model: type[E], **filters: Any) -> int:
        stmt = select(func.count()).select_from(model).where(*_criteria(model, filters))
        with self._translate_errors("count", model):
            result = await self.session.execute(stmt)
            return int(result.scalar_one())

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    async def create(self, model: type[E], **fields: Any) -> E:
        entity = model(**fields)
        with self._translate_errors("create", model):
            self.session.add(entity)
            await self.session.flush()
        return entity

    async def update(
        self,
        model: type[E],
        entity_id: UUID,
        *,
        expected_version: int | None = None,
        **fields: Any,
    ) -> E:
        """
        Update columns of one entity.

        Versioned entities always get their ``version`` bumped; when
        ``expected_version`` is given the write only applies if nobody else
        bumped it first, otherwise ``ConcurrencyConflict`` is raised.
        """
        versioned = hasattr(model, "version")
        if expected_version is not None and not versioned:
            raise TypeError(f"{model.__name__} has no version column")

        stmt = sa_update(model).where(model.id == entity_id)  # type: ignore[attr-defined]
        values = dict(fields)
        if versioned:
            if expected_version is not None:
                stmt = stmt.where(model.version == expected_version)  # type: ignore[attr-defined]
            values["version"] = model.version + 1  # type: ignore[attr-defined]
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        with self._translate_errors("update", model):
            result = await self.session.execute(stmt)
            updated = result.rowcount

        if updated == 0:
            if await self.get(model, entity_id) is None:
                raise NotFound(f"{model.__name__} not found")
            raise ConcurrencyConflict(
                f"{model.__name__} was modified concurrently",
                expected_version=expected_version,
            )

        entity = await self.get(model, entity_id)
        if entity is None:
            raise NotFound(f"{model.__name__} not found")
        return entity

    async def delete(self, model: type[E], entity_id: UUID) -> None:
        stmt = sa_delete(model).where(model.id == entity_id)  # type: ignore[attr-defined]
        stmt = stmt.execution_options(synchronize_session="fetch")
        with self._translate_errors("delete", model):
            result = await self.session.execute(stmt)
        if result.rowcount == 0:
            raise NotFound(f"{model.__name__} not found")

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        """Nested transaction: an error raised inside undoes only the writes made inside."""
        async with self.session.begin_nested():
            yield
