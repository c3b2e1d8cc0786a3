from __future__ import annotations

import asyncio
import copy
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import JSON, Boolean, Column, MetaData, String, Table, and_, delete, func, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.sql.elements import ColumnElement

from crm_rbac.platform.security.filters import DELETED_FIELD, TENANT_FIELD, And, Eq, Filter, In
from crm_rbac.storage.base import ensure_tenant_scope


DOCUMENT_COLUMN = "document"
_REP_ROLE_SPELLINGS = ("sales_rep", "rep")


class FilterRenderError(ValueError):
    """Raised when a filter references an attribute the table does not index."""


def define_entity_table(metadata: MetaData, name: str, indexed_fields: Iterable[str]) -> Table:
    """One table per entity: key columns for filterable attributes, full document as JSON."""

    extra_columns = [
        Column(field, String(128), index=True, nullable=True)
        for field in dict.fromkeys(indexed_fields)
        if field not in {"id", TENANT_FIELD, DELETED_FIELD}
    ]
    return Table(
        name,
        metadata,
        Column("id", String(128), primary_key=True),
        Column(TENANT_FIELD, String(128), index=True, nullable=False),
        Column(DELETED_FIELD, Boolean, nullable=False, default=False),
        *extra_columns,
        Column(DOCUMENT_COLUMN, JSON, nullable=False),
    )


def define_users_table(metadata: MetaData, name: str = "users") -> Table:
    return Table(
        name,
        metadata,
        Column("userId", String(128), primary_key=True),
        Column(TENANT_FIELD, String(128), index=True, nullable=False),
        Column("role", String(64), nullable=False),
        Column("reportingTo", String(128), index=True, nullable=True),
        Column(DELETED_FIELD, Boolean, nullable=False, default=False),
        Column(DOCUMENT_COLUMN, JSON, nullable=False),
    )


def render_filter(table: Table, predicate: Filter) -> ColumnElement[bool]:
    if isinstance(predicate, Eq):
        return _column(table, predicate.field) == predicate.value
    if isinstance(predicate, In):
        return _column(table, predicate.field).in_(sorted(predicate.values, key=str))
    if isinstance(predicate, And):
        return and_(*(render_filter(table, clause) for clause in predicate.clauses))
    raise FilterRenderError(f"Unsupported filter node: {type(predicate).__name__}")


def _column(table: Table, field: str) -> Any:
    if field == DOCUMENT_COLUMN or field not in table.c:
        raise FilterRenderError(f"Table '{table.name}' has no indexed column '{field}'")
    return table.c[field]


def _row_values(table: Table, document: Mapping[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {DOCUMENT_COLUMN: dict(document)}
    for column in table.columns:
        if column.name == DOCUMENT_COLUMN:
            continue
        value = document.get(column.name)
        if column.name == DELETED_FIELD:
            value = bool(value)
        values[column.name] = value
    return values


class SqlRecordStore:
    """Record store backed by SQLAlchemy Core.

    Blocking calls run in a worker thread so the async callers never stall
    the event loop.
    """

    def __init__(self, engine: Engine, tables: Mapping[str, Table]) -> None:
        self._engine = engine
        self._tables = dict(tables)

    def table(self, name: str) -> Table:
        try:
            return self._tables[name]
        except KeyError as exc:
            raise KeyError(f"Unknown table '{name}'") from exc

    def put(self, table: str, document: Mapping[str, Any]) -> dict[str, Any]:
        target = self.table(table)
        if not document.get("id"):
            raise ValueError("document requires an 'id'")
        with self._engine.begin() as conn:
            conn.execute(delete(target).where(target.c.id == document["id"]))
            conn.execute(insert(target).values(**_row_values(target, document)))
        return copy.deepcopy(dict(document))

    async def query_by_tenant(
        self, table: str, tenant_id: str, extra_filter: Filter | None = None
    ) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._query_by_tenant, table, tenant_id, extra_filter)

    async def get_by_id(self, table: str, record_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._get_by_id, table, record_id)

    async def update(
        self,
        table: str,
        record_id: str,
        changes: Mapping[str, Any],
        *,
        remove: Iterable[str] = (),
    ) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._update, table, record_id, dict(changes), tuple(remove))

    async def delete(self, table: str, record_id: str) -> bool:
        return await asyncio.to_thread(self._delete, table, record_id)

    def _query_by_tenant(self, table: str, tenant_id: str, extra_filter: Filter | None) -> list[dict[str, Any]]:
        ensure_tenant_scope(tenant_id, extra_filter)
        target = self.table(table)
        stmt = select(target.c[DOCUMENT_COLUMN]).where(target.c[TENANT_FIELD] == tenant_id)
        if extra_filter is not None:
            stmt = stmt.where(render_filter(target, extra_filter))
        with self._engine.connect() as conn:
            rows = conn.execute(stmt.order_by(target.c.id)).scalars().all()
        return [dict(row) for row in rows]

    def _get_by_id(self, table: str, record_id: str) -> dict[str, Any] | None:
        target = self.table(table)
        with self._engine.connect() as conn:
            row = conn.execute(select(target.c[DOCUMENT_COLUMN]).where(target.c.id == record_id)).scalar_one_or_none()
        return dict(row) if row is not None else None

    def _update(
        self, table: str, record_id: str, changes: dict[str, Any], remove: tuple[str, ...]
    ) -> dict[str, Any] | None:
        target = self.table(table)
        with self._engine.begin() as conn:
            current = conn.execute(
                select(target.c[DOCUMENT_COLUMN]).where(target.c.id == record_id)
            ).scalar_one_or_none()
            if current is None:
                return None
            document = dict(current)
            document.update(changes)
            for key in remove:
                document.pop(key, None)
            values = _row_values(target, document)
            values.pop("id", None)
            conn.execute(update(target).where(target.c.id == record_id).values(**values))
        return document

    def _delete(self, table: str, record_id: str) -> bool:
        target = self.table(table)
        with self._engine.begin() as conn:
            result = conn.execute(delete(target).where(target.c.id == record_id))
        return result.rowcount > 0


class SqlDirectory:
    def __init__(self, engine: Engine, users: Table) -> None:
        self._engine = engine
        self._users = users

    def add_user(self, user: Mapping[str, Any]) -> None:
        values = {
            "userId": user["userId"],
            TENANT_FIELD: user[TENANT_FIELD],
            "role": str(user.get("role") or ""),
            "reportingTo": user.get("reportingTo"),
            DELETED_FIELD: bool(user.get(DELETED_FIELD)),
            DOCUMENT_COLUMN: dict(user),
        }
        with self._engine.begin() as conn:
            conn.execute(delete(self._users).where(self._users.c.userId == user["userId"]))
            conn.execute(insert(self._users).values(**values))

    async def find_reports(self, manager_id: str, tenant_id: str) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._find_reports, manager_id, tenant_id)

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._get_user, user_id)

    async def set_reporting_to(self, user_id: str, manager_id: str | None) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._set_reporting_to, user_id, manager_id)

    def _find_reports(self, manager_id: str, tenant_id: str) -> list[dict[str, Any]]:
        users = self._users
        stmt = select(users.c[DOCUMENT_COLUMN]).where(
            users.c.reportingTo == manager_id,
            users.c[TENANT_FIELD] == tenant_id,
            func.lower(users.c.role).in_(_REP_ROLE_SPELLINGS),
            users.c[DELETED_FIELD].is_(False),
        )
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).scalars().all()
        return [dict(row) for row in rows]

    def _get_user(self, user_id: str) -> dict[str, Any] | None:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(self._users.c[DOCUMENT_COLUMN]).where(self._users.c.userId == user_id)
            ).scalar_one_or_none()
        return dict(row) if row is not None else None

    def _set_reporting_to(self, user_id: str, manager_id: str | None) -> dict[str, Any] | None:
        users = self._users
        with self._engine.begin() as conn:
            current = conn.execute(
                select(users.c[DOCUMENT_COLUMN]).where(users.c.userId == user_id)
            ).scalar_one_or_none()
            if current is None:
                return None
            document = dict(current)
            if manager_id:
                document["reportingTo"] = manager_id
            else:
                document.pop("reportingTo", None)
            conn.execute(
                update(users)
                .where(users.c.userId == user_id)
                .values(reportingTo=manager_id or None, **{DOCUMENT_COLUMN: document})
            )
        return document
