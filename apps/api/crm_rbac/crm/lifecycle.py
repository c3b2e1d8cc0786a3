from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from crm_rbac import audit
from crm_rbac.crm.entities import EntityDefinition
from crm_rbac.platform.security.context import RBACUser
from crm_rbac.platform.security.errors import PolicyDenied
from crm_rbac.platform.security.filters import DELETED_FIELD, TENANT_FIELD
from crm_rbac.platform.security.guard import RecordAccessGuard
from crm_rbac.platform.security.permissions import PermissionChecker
from crm_rbac.platform.security.policies import Action
from crm_rbac.platform.security.roles import Role
from crm_rbac.storage.base import RecordStore


logger = logging.getLogger("crm_rbac.lifecycle")


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class RecordLifecycleService:
    """Soft delete, restore and ADMIN-only hard delete.

    Each operation raises :class:`PolicyDenied` when the role lacks the
    capability, and returns ``None``/``False`` when the record is absent or
    not accessible to the caller.
    """

    def __init__(
        self,
        store: RecordStore,
        checker: PermissionChecker,
        guard: RecordAccessGuard,
        *,
        clock: Callable[[], str] = _utcnow,
    ) -> None:
        self._store = store
        self._checker = checker
        self._guard = guard
        self._clock = clock

    async def soft_delete_for_user(
        self, definition: EntityDefinition, record_id: str, user: RBACUser
    ) -> dict[str, Any] | None:
        self._checker.require_permission(user, Action.DELETE, definition.resource_type)
        record = await self._load_accessible(definition, record_id, user, allow_deleted=False)
        if record is None:
            return None

        now = self._clock()
        updated = await self._store.update(
            definition.table,
            record_id,
            {
                DELETED_FIELD: True,
                "deletedBy": user.user_id,
                "deletedAt": now,
                "updatedBy": user.email or user.user_id,
                "updatedAt": now,
            },
        )
        self._audit(definition, record_id, user, "soft_delete", record, updated)
        return updated

    async def restore_for_user(
        self, definition: EntityDefinition, record_id: str, user: RBACUser
    ) -> dict[str, Any] | None:
        self._checker.require_permission(user, Action.EDIT, definition.resource_type)
        record = await self._load_accessible(definition, record_id, user, allow_deleted=True)
        if record is None or not record.get(DELETED_FIELD):
            return None

        updated = await self._store.update(
            definition.table,
            record_id,
            {
                DELETED_FIELD: False,
                "updatedBy": user.email or user.user_id,
                "updatedAt": self._clock(),
            },
            remove=("deletedBy", "deletedAt"),
        )
        self._audit(definition, record_id, user, "restore", record, updated)
        return updated

    async def hard_delete_for_user(self, definition: EntityDefinition, record_id: str, user: RBACUser) -> bool:
        self._checker.require_permission(user, Action.DELETE, definition.resource_type)
        if user.tier is not Role.ADMIN:
            raise PolicyDenied(user.role, "hard_delete", definition.resource_type.value)

        record = await self._load_accessible(definition, record_id, user, allow_deleted=True)
        if record is None:
            return False

        deleted = await self._store.delete(definition.table, record_id)
        if deleted:
            self._audit(definition, record_id, user, "hard_delete", record, None)
        return deleted

    async def _load_accessible(
        self, definition: EntityDefinition, record_id: str, user: RBACUser, *, allow_deleted: bool
    ) -> dict[str, Any] | None:
        record = await self._store.get_by_id(definition.table, record_id)
        if record is None or record.get(TENANT_FIELD) != user.tenant_id:
            return None
        if not await self._guard.can_access(record, user, definition.owner_field, allow_deleted=allow_deleted):
            return None
        return record

    @staticmethod
    def _audit(
        definition: EntityDefinition,
        record_id: str,
        user: RBACUser,
        action: str,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
    ) -> None:
        audit.record(
            user,
            entity_type=f"crm.{definition.resource_type.value}",
            entity_id=record_id,
            action=action,
            before=before,
            after=after,
        )
        logger.info(
            f"rbac.lifecycle.{action}",
            extra={"entity": definition.name, "record_id": record_id, "user_id": user.user_id},
        )
