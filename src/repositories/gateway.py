"""Data access gateway over the named Commit collections.

Uniform request/response calls (select / insert / update / delete) keyed by
collection name, returning plain row dicts. Every call opens its own session
and transaction and commits before returning, so there is no transaction
spanning two calls: callers that need several writes to succeed together
must compensate on failure themselves.

Failures raise ``GatewayError`` carrying a Postgres-style SQLSTATE code so
callers can map conflicts to domain messages without knowing the driver.
The gateway also owns the authoritative dependency cycle check: before
inserting dependency edges it walks the full persisted edge set (Postgres
deployments additionally carry the equivalent trigger from migration 001).
"""

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from enum import StrEnum
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from src.db.tables import (
    AgreementRow,
    AgreementSignatureRow,
    DeliverableDependencyRow,
    DeliverableRow,
    TeamMemberRow,
    UpdateReactionRow,
    UpdateRow,
)
from src.engine.graph import find_cycle_edge
from src.models.common import utc_now
from src.models.results import ErrorKind

logger = logging.getLogger(__name__)

COLLECTIONS: dict[str, type[DeclarativeBase]] = {
    "team_members": TeamMemberRow,
    "agreements": AgreementRow,
    "agreement_signatures": AgreementSignatureRow,
    "deliverables": DeliverableRow,
    "deliverable_dependencies": DeliverableDependencyRow,
    "updates": UpdateRow,
    "update_reactions": UpdateReactionRow,
}

# Children before parents, for clearing everything.
CLEAR_ORDER = (
    "update_reactions",
    "updates",
    "deliverable_dependencies",
    "deliverables",
    "agreement_signatures",
    "agreements",
    "team_members",
)


class GatewayErrorCode(StrEnum):
    """SQLSTATE codes the callers care about."""

    UNIQUE_VIOLATION = "23505"
    FOREIGN_KEY_VIOLATION = "23503"
    NOT_NULL_VIOLATION = "23502"
    CHECK_VIOLATION = "23514"
    RAISE_EXCEPTION = "P0001"
    CONNECTION_FAILURE = "08006"
    UNKNOWN = "XX000"


_CODE_TO_KIND: dict[GatewayErrorCode, ErrorKind] = {
    GatewayErrorCode.UNIQUE_VIOLATION: ErrorKind.CONFLICT,
    GatewayErrorCode.RAISE_EXCEPTION: ErrorKind.CONFLICT,
    GatewayErrorCode.FOREIGN_KEY_VIOLATION: ErrorKind.VALIDATION,
    GatewayErrorCode.NOT_NULL_VIOLATION: ErrorKind.VALIDATION,
    GatewayErrorCode.CHECK_VIOLATION: ErrorKind.VALIDATION,
    GatewayErrorCode.CONNECTION_FAILURE: ErrorKind.TRANSIENT,
    GatewayErrorCode.UNKNOWN: ErrorKind.UNEXPECTED,
}

# SQLite reports constraint failures only in the message text.
_SQLITE_MARKERS: tuple[tuple[str, GatewayErrorCode], ...] = (
    ("UNIQUE constraint failed", GatewayErrorCode.UNIQUE_VIOLATION),
    ("FOREIGN KEY constraint failed", GatewayErrorCode.FOREIGN_KEY_VIOLATION),
    ("NOT NULL constraint failed", GatewayErrorCode.NOT_NULL_VIOLATION),
    ("CHECK constraint failed", GatewayErrorCode.CHECK_VIOLATION),
)


class GatewayError(Exception):
    """A gateway call failed. ``message`` is safe to show to users."""

    def __init__(self, message: str, *, code: GatewayErrorCode = GatewayErrorCode.UNKNOWN,
                 collection: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.collection = collection

    @property
    def kind(self) -> ErrorKind:
        return _CODE_TO_KIND[self.code]


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def translate_error(exc: DBAPIError, collection: str) -> GatewayError:
    """Map a driver error onto a ``GatewayError`` with a SQLSTATE code."""
    state = _sqlstate(exc)
    code = GatewayErrorCode.UNKNOWN
    if state is not None:
        try:
            code = GatewayErrorCode(state)
        except ValueError:
            if state.startswith("08"):
                code = GatewayErrorCode.CONNECTION_FAILURE
    else:
        text = str(exc.orig)
        for marker, marker_code in _SQLITE_MARKERS:
            if marker in text:
                code = marker_code
                break
        else:
            if isinstance(exc, (OperationalError, InterfaceError)) and not isinstance(exc, IntegrityError):
                code = GatewayErrorCode.CONNECTION_FAILURE

    message = {
        GatewayErrorCode.UNIQUE_VIOLATION: f"Duplicate record in {collection}",
        GatewayErrorCode.FOREIGN_KEY_VIOLATION: f"Referenced record for {collection} does not exist",
        GatewayErrorCode.NOT_NULL_VIOLATION: f"Missing required value for {collection}",
        GatewayErrorCode.CHECK_VIOLATION: f"Invalid value for {collection}",
        GatewayErrorCode.RAISE_EXCEPTION: str(exc.orig),
        GatewayErrorCode.CONNECTION_FAILURE: "Could not reach the database. Please try again.",
    }.get(code, f"Request to {collection} failed")
    return GatewayError(message, code=code, collection=collection)


class DataGateway:
    """Collection-keyed CRUD with one session per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # -- helpers ----------------------------------------------------------

    @staticmethod
    def _table(collection: str) -> type[DeclarativeBase]:
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise GatewayError(f"Unknown collection: {collection}", collection=collection) from None

    @staticmethod
    def _where(table: type[DeclarativeBase], filters: Mapping[str, Any] | None) -> list:
        clauses = []
        for column_name, value in (filters or {}).items():
            column = getattr(table, column_name)
            if isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(value)))
            elif value is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == value)
        return clauses

    @staticmethod
    def _to_dict(row: DeclarativeBase) -> dict[str, Any]:
        return {c.key: getattr(row, c.key) for c in row.__table__.columns}

    @staticmethod
    def _stamp(table: type[DeclarativeBase], values: Mapping[str, Any]) -> dict[str, Any]:
        # A fresh row's updated_at equals its created_at, so "was it ever
        # updated" is a plain inequality.
        row = dict(values)
        columns = table.__table__.columns
        if "created_at" in columns and "updated_at" in columns:
            row.setdefault("created_at", utc_now())
            row.setdefault("updated_at", row["created_at"])
        return row

    @asynccontextmanager
    async def _transaction(self, collection: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except DBAPIError as exc:
            error = translate_error(exc, collection)
            logger.warning("Gateway %s failed [%s]: %s", collection, error.code.value, exc.orig)
            raise error from exc

    # -- contract ---------------------------------------------------------

    async def select(self, collection: str, filters: Mapping[str, Any] | None = None, *,
                     order_by: str | None = None, descending: bool = False) -> list[dict[str, Any]]:
        table = self._table(collection)
        stmt = select(table).where(*self._where(table, filters))
        if order_by is not None:
            column = getattr(table, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        async with self._transaction(collection) as session:
            result = await session.execute(stmt)
            return [self._to_dict(row) for row in result.scalars().all()]

    async def select_one(self, collection: str,
                         filters: Mapping[str, Any]) -> dict[str, Any] | None:
        """Zero-or-one lookup; more than one match is an error."""
        rows = await self.select(collection, filters)
        if len(rows) > 1:
            raise GatewayError(f"Expected at most one row from {collection}", collection=collection)
        return rows[0] if rows else None

    async def insert(self, collection: str,
                     rows: Mapping[str, Any] | Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        table = self._table(collection)
        payload = [rows] if isinstance(rows, Mapping) else list(rows)
        if not payload:
            return []
        async with self._transaction(collection) as session:
            if table is DeliverableDependencyRow:
                await self._guard_dependency_cycles(session, payload)
            instances = [table(**self._stamp(table, values)) for values in payload]
            session.add_all(instances)
            await session.flush()
            return [self._to_dict(row) for row in instances]

    async def update(self, collection: str, filters: Mapping[str, Any],
                     patch: Mapping[str, Any]) -> int:
        """Apply ``patch`` to matching rows; returns the matched row count.

        ``updated_at`` is bumped automatically on collections that have it.
        """
        table = self._table(collection)
        values = dict(patch)
        if "updated_at" in table.__table__.columns and "updated_at" not in values:
            values["updated_at"] = utc_now()
        stmt = (
            update(table)
            .where(*self._where(table, filters))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._transaction(collection) as session:
            result = await session.execute(stmt)
            return result.rowcount

    async def delete(self, collection: str, filters: Mapping[str, Any]) -> int:
        if not filters:
            raise GatewayError(f"Refusing unfiltered delete on {collection}", collection=collection)
        table = self._table(collection)
        stmt = (
            delete(table)
            .where(*self._where(table, filters))
            .execution_options(synchronize_session=False)
        )
        async with self._transaction(collection) as session:
            result = await session.execute(stmt)
            return result.rowcount

    async def clear(self, collection: str) -> int:
        """Delete every row. Seed/fixture use only."""
        table = self._table(collection)
        async with self._transaction(collection) as session:
            result = await session.execute(delete(table))
            return result.rowcount

    # -- storage-side guards ---------------------------------------------

    async def _guard_dependency_cycles(self, session: AsyncSession,
                                       payload: list[Mapping[str, Any]]) -> None:
        result = await session.execute(
            select(DeliverableDependencyRow.deliverable_id, DeliverableDependencyRow.depends_on_id)
        )
        existing = [(a, b) for a, b in result.all()]
        new_edges = [(values["deliverable_id"], values["depends_on_id"]) for values in payload]
        # Self edges are the check constraint's job.
        offending = find_cycle_edge(existing, [(a, b) for a, b in new_edges if a != b])
        if offending is not None:
            raise GatewayError(
                f"circular dependency detected: {offending[0]} -> {offending[1]}",
                code=GatewayErrorCode.RAISE_EXCEPTION,
                collection="deliverable_dependencies",
            )
