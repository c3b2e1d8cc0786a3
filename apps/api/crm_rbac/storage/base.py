from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from crm_rbac.platform.security.filters import TENANT_FIELD, Filter, find_equality


class RecordStore(Protocol):
    """Tenant-scoped document storage, one table per entity.

    ``get_by_id`` is not tenant-scoped; callers must check ``tenantId``
    themselves. Errors propagate to the caller untouched.
    """

    async def query_by_tenant(
        self, table: str, tenant_id: str, extra_filter: Filter | None = None
    ) -> list[dict[str, Any]]:
        ...

    async def get_by_id(self, table: str, record_id: str) -> dict[str, Any] | None:
        ...

    async def update(
        self,
        table: str,
        record_id: str,
        changes: Mapping[str, Any],
        *,
        remove: Iterable[str] = (),
    ) -> dict[str, Any] | None:
        ...

    async def delete(self, table: str, record_id: str) -> bool:
        ...


def ensure_tenant_scope(tenant_id: str, extra_filter: Filter | None) -> None:
    """Reject a filter whose own tenant clause names a different tenant."""

    if extra_filter is None:
        return
    scoped = find_equality(extra_filter, TENANT_FIELD)
    if scoped is not None and scoped != tenant_id:
        raise ValueError(f"Filter is scoped to tenant '{scoped}', not '{tenant_id}'")
