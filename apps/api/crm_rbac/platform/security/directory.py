from __future__ import annotations

import logging
from typing import Any, Protocol

from crm_rbac.metrics import observe_directory_lookup_failure
from crm_rbac.platform.security.errors import ReportingCycleError


logger = logging.getLogger("crm_rbac.directory")


class DirectoryClient(Protocol):
    """User directory consumed by the access checks."""

    async def find_reports(self, manager_id: str, tenant_id: str) -> list[dict[str, Any]]:
        """Non-deleted SALES_REP users of ``tenant_id`` whose ``reportingTo`` is ``manager_id``."""
        ...

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        ...

    async def set_reporting_to(self, user_id: str, manager_id: str | None) -> dict[str, Any] | None:
        """Persist a new ``reportingTo``; callers validate the line first."""
        ...


class DirectoryResolver:
    def __init__(self, client: DirectoryClient, *, max_depth: int = 32) -> None:
        self._client = client
        self._max_depth = max_depth

    async def subordinates_of(self, manager_id: str, tenant_id: str) -> frozenset[str]:
        """Direct reports of ``manager_id`` within ``tenant_id``.

        Lookup failures are logged and yield an empty set, which leaves a
        manager with access to their own records only.
        """

        try:
            reports = await self._client.find_reports(manager_id, tenant_id)
        except Exception as exc:
            observe_directory_lookup_failure()
            logger.warning(
                "rbac.directory.lookup_failed",
                extra={"manager_id": manager_id, "tenant_id": tenant_id, "error": str(exc)},
            )
            return frozenset()

        subordinates: set[str] = set()
        for entry in reports:
            report_id = entry.get("userId")
            if not report_id or report_id == manager_id:
                continue
            subordinates.add(str(report_id))

        logger.debug(
            "rbac.directory.resolved",
            extra={"manager_id": manager_id, "tenant_id": tenant_id, "owner_count": len(subordinates)},
        )
        return frozenset(subordinates)

    async def validate_reporting_line(self, user_id: str, manager_id: str | None, tenant_id: str) -> None:
        """Reject a ``reportingTo`` assignment that is cross-tenant or would close a cycle.

        Walks up the manager's chain at most ``max_depth`` levels. Directory
        errors propagate; this runs on the write path.
        """

        if not manager_id:
            return
        if manager_id == user_id:
            raise ReportingCycleError(user_id, manager_id, "a user cannot report to themselves")

        manager = await self._client.get_user(manager_id)
        if manager is None or manager.get("isDeleted"):
            raise ReportingCycleError(user_id, manager_id, "manager not found")
        if manager.get("tenantId") != tenant_id:
            raise ReportingCycleError(user_id, manager_id, "manager belongs to another tenant")

        visited = {user_id, manager_id}
        current = manager
        for _ in range(self._max_depth):
            next_id = current.get("reportingTo")
            if not next_id:
                return
            if next_id in visited:
                raise ReportingCycleError(user_id, manager_id, "reporting chain would form a cycle")
            visited.add(next_id)
            current = await self._client.get_user(next_id)
            if current is None:
                return

        raise ReportingCycleError(user_id, manager_id, f"reporting chain exceeds {self._max_depth} levels")
