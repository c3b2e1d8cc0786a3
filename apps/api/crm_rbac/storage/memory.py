from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from typing import Any

from crm_rbac.platform.security.filters import Filter, evaluate
from crm_rbac.platform.security.roles import Role, normalize_role
from crm_rbac.storage.base import ensure_tenant_scope


class InMemoryRecordStore:
    def __init__(self) -> None:
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}

    def put(self, table: str, document: Mapping[str, Any]) -> dict[str, Any]:
        record_id = document.get("id")
        if not record_id:
            raise ValueError("document requires an 'id'")
        stored = copy.deepcopy(dict(document))
        self._tables.setdefault(table, {})[str(record_id)] = stored
        return copy.deepcopy(stored)

    async def query_by_tenant(
        self, table: str, tenant_id: str, extra_filter: Filter | None = None
    ) -> list[dict[str, Any]]:
        ensure_tenant_scope(tenant_id, extra_filter)
        rows = self._tables.get(table, {}).values()
        return [
            copy.deepcopy(row)
            for row in rows
            if row.get("tenantId") == tenant_id and (extra_filter is None or evaluate(extra_filter, row))
        ]

    async def get_by_id(self, table: str, record_id: str) -> dict[str, Any] | None:
        row = self._tables.get(table, {}).get(str(record_id))
        return copy.deepcopy(row) if row is not None else None

    async def update(
        self,
        table: str,
        record_id: str,
        changes: Mapping[str, Any],
        *,
        remove: Iterable[str] = (),
    ) -> dict[str, Any] | None:
        row = self._tables.get(table, {}).get(str(record_id))
        if row is None:
            return None
        row.update(copy.deepcopy(dict(changes)))
        for key in remove:
            row.pop(key, None)
        return copy.deepcopy(row)

    async def delete(self, table: str, record_id: str) -> bool:
        return self._tables.get(table, {}).pop(str(record_id), None) is not None


class InMemoryDirectory:
    def __init__(self, users: Iterable[Mapping[str, Any]] = ()) -> None:
        self._users: dict[str, dict[str, Any]] = {}
        for user in users:
            self.add_user(user)

    def add_user(self, user: Mapping[str, Any]) -> None:
        self._users[str(user["userId"])] = dict(user)

    async def find_reports(self, manager_id: str, tenant_id: str) -> list[dict[str, Any]]:
        return [
            dict(user)
            for user in self._users.values()
            if user.get("reportingTo") == manager_id
            and user.get("tenantId") == tenant_id
            and normalize_role(user.get("role")) is Role.SALES_REP
            and not user.get("isDeleted")
        ]

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        user = self._users.get(str(user_id))
        return dict(user) if user is not None else None

    async def set_reporting_to(self, user_id: str, manager_id: str | None) -> dict[str, Any] | None:
        user = self._users.get(str(user_id))
        if user is None:
            return None
        if manager_id:
            user["reportingTo"] = manager_id
        else:
            user.pop("reportingTo", None)
        return dict(user)
