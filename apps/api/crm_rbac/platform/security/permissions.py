from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from crm_rbac.metrics import observe_policy_denied
from crm_rbac.platform.security.context import RBACUser
from crm_rbac.platform.security.errors import PolicyDenied
from crm_rbac.platform.security.guard import RecordAccessGuard
from crm_rbac.platform.security.policies import AccessPolicy, Action, ResourceType


logger = logging.getLogger("crm_rbac.permissions")


class PermissionChecker:
    """Capability check first, then ownership of the concrete record if one is given."""

    def __init__(self, policy: AccessPolicy, guard: RecordAccessGuard) -> None:
        self._policy = policy
        self._guard = guard

    @property
    def policy(self) -> AccessPolicy:
        return self._policy

    def is_permitted(self, user: RBACUser, action: Action | str, resource_type: ResourceType | str) -> bool:
        if self._policy.is_permitted(user.role, action, resource_type):
            return True
        observe_policy_denied(resource=str(resource_type), action=str(action))
        return False

    def require_permission(self, user: RBACUser, action: Action | str, resource_type: ResourceType | str) -> None:
        if not self.is_permitted(user, action, resource_type):
            logger.info(
                "rbac.policy.denied",
                extra={"user_id": user.user_id, "role": user.role, "entity": str(resource_type), "operation": str(action)},
            )
            raise PolicyDenied(user.role, str(action), str(resource_type))

    async def check_permission(
        self,
        user: RBACUser,
        action: Action | str,
        resource_type: ResourceType | str,
        record: Mapping[str, Any] | None = None,
        *,
        owner_field: str = "createdBy",
        allow_deleted: bool = False,
    ) -> bool:
        if not self.is_permitted(user, action, resource_type):
            return False
        if record is None:
            return True
        return await self._guard.can_access(record, user, owner_field, allow_deleted=allow_deleted)

    async def can_create(self, user: RBACUser, resource_type: ResourceType | str) -> bool:
        return await self.check_permission(user, Action.CREATE, resource_type)

    async def can_view(
        self, user: RBACUser, record: Mapping[str, Any], resource_type: ResourceType | str, *, owner_field: str = "createdBy"
    ) -> bool:
        return await self.check_permission(user, Action.VIEW, resource_type, record, owner_field=owner_field)

    async def can_edit(
        self, user: RBACUser, record: Mapping[str, Any], resource_type: ResourceType | str, *, owner_field: str = "createdBy"
    ) -> bool:
        return await self.check_permission(user, Action.EDIT, resource_type, record, owner_field=owner_field)

    async def can_delete(
        self, user: RBACUser, record: Mapping[str, Any], resource_type: ResourceType | str, *, owner_field: str = "createdBy"
    ) -> bool:
        return await self.check_permission(user, Action.DELETE, resource_type, record, owner_field=owner_field)
