from __future__ import annotations

import logging
from typing import Any

from crm_rbac import audit
from crm_rbac.platform.security.context import RBACUser
from crm_rbac.platform.security.directory import DirectoryClient, DirectoryResolver
from crm_rbac.platform.security.filters import DELETED_FIELD, TENANT_FIELD, read_field
from crm_rbac.platform.security.permissions import PermissionChecker
from crm_rbac.platform.security.policies import Action, ResourceType


logger = logging.getLogger("crm_rbac.reporting")


class ReportingLineService:
    """Reassigns a user's manager.

    The new line is validated before anything is written, so a cycle or a
    cross-tenant manager never reaches the directory.
    """

    def __init__(self, client: DirectoryClient, resolver: DirectoryResolver, checker: PermissionChecker) -> None:
        self._client = client
        self._resolver = resolver
        self._checker = checker

    async def assign_manager_for_user(
        self, actor: RBACUser, user_id: str, manager_id: str | None
    ) -> dict[str, Any] | None:
        self._checker.require_permission(actor, Action.EDIT, ResourceType.USER)

        target = await self._client.get_user(user_id)
        if (
            target is None
            or target.get(TENANT_FIELD) != actor.tenant_id
            or read_field(target, DELETED_FIELD) != False  # noqa: E712
        ):
            return None

        manager_id = manager_id or None
        await self._resolver.validate_reporting_line(user_id, manager_id, actor.tenant_id)
        updated = await self._client.set_reporting_to(user_id, manager_id)
        if updated is None:
            return None

        audit.record(
            actor,
            entity_type="directory.user",
            entity_id=user_id,
            action="reassign_manager",
            before=target,
            after=updated,
        )
        logger.info(
            "rbac.reporting_line.updated",
            extra={
                "user_id": actor.user_id,
                "tenant_id": actor.tenant_id,
                "record_id": user_id,
                "manager_id": manager_id,
            },
        )
        return updated
