from __future__ import annotations

import logging
from typing import Any

from crm_rbac.crm.entities import EntityDefinition
from crm_rbac.metrics import observe_denied_read, observe_filter_compiled
from crm_rbac.otel import get_tracer
from crm_rbac.platform.security.context import RBACUser
from crm_rbac.platform.security.filters import DELETED_FIELD, TENANT_FIELD, Eq, and_
from crm_rbac.platform.security.guard import DenialReason, RecordAccessGuard
from crm_rbac.platform.security.ownership import OwnershipFilterCompiler
from crm_rbac.platform.security.permissions import PermissionChecker
from crm_rbac.platform.security.policies import Action
from crm_rbac.storage.base import RecordStore


logger = logging.getLogger("crm_rbac.service")
tracer = get_tracer("crm_rbac.service")


def _role_label(user: RBACUser) -> str:
    tier = user.tier
    return tier.value if tier is not None else "unknown"


def matches_term(record: dict[str, Any], fields: tuple[str, ...], term: str) -> bool:
    needle = term.lower()
    for field_name in fields:
        value = record.get(field_name)
        if isinstance(value, str) and needle in value.lower():
            return True
    return False


class EntityAccessService:
    """Role-filtered reads for one entity.

    Access denial is never an error here: it shows up as an empty list or
    ``None``. The role's view capability on the entity is checked before any
    ownership logic runs. Storage errors propagate to the caller as-is.
    """

    def __init__(
        self,
        definition: EntityDefinition,
        store: RecordStore,
        compiler: OwnershipFilterCompiler,
        guard: RecordAccessGuard,
        checker: PermissionChecker,
    ) -> None:
        self.definition = definition
        self._store = store
        self._compiler = compiler
        self._guard = guard
        self._checker = checker

    @property
    def owner_field(self) -> str:
        return self.definition.owner_field

    def _can_view(self, user: RBACUser, operation: str) -> bool:
        if self._checker.is_permitted(user, Action.VIEW, self.definition.resource_type):
            return True
        logger.info(
            "rbac.read.forbidden",
            extra={"entity": self.definition.name, "operation": operation, "user_id": user.user_id, "role": user.role},
        )
        return False

    async def list_for_user(self, user: RBACUser, include_deleted: bool = False) -> list[dict[str, Any]]:
        if not self._can_view(user, "list"):
            return []
        with tracer.start_as_current_span(f"rbac.{self.definition.name}.list") as span:
            span.set_attribute("rbac.role", _role_label(user))
            predicate = await self._compiler.compile(user, self.owner_field, include_deleted=include_deleted)
            observe_filter_compiled(entity=self.definition.name, role=_role_label(user))
            records = await self._store.query_by_tenant(self.definition.table, user.tenant_id, predicate)
            span.set_attribute("rbac.result_count", len(records))

        logger.info(
            "rbac.list",
            extra={
                "entity": self.definition.name,
                "user_id": user.user_id,
                "tenant_id": user.tenant_id,
                "role": user.role,
                "result_count": len(records),
            },
        )
        return records

    async def get_by_id_for_user(self, record_id: str, user: RBACUser) -> dict[str, Any] | None:
        if not self._can_view(user, "get"):
            return None
        with tracer.start_as_current_span(f"rbac.{self.definition.name}.get"):
            record = await self._store.get_by_id(self.definition.table, record_id)
            if record is None:
                logger.debug("rbac.get.not_found", extra={"entity": self.definition.name, "record_id": record_id})
                return None

            # Id lookups are not tenant-scoped at the storage layer.
            if record.get(TENANT_FIELD) != user.tenant_id:
                reason: DenialReason | None = DenialReason.TENANT
            else:
                reason = await self._guard.denial_reason(record, user, self.owner_field)

        if reason is not None:
            observe_denied_read(resource=self.definition.name, reason=reason.value)
            logger.info(
                "rbac.get.denied",
                extra={
                    "entity": self.definition.name,
                    "record_id": record_id,
                    "user_id": user.user_id,
                    "reason": reason.value,
                },
            )
            return None
        return record

    async def list_by_owner_for_user(self, owner_id: str, user: RBACUser) -> list[dict[str, Any]]:
        if not self._can_view(user, "list_by_owner"):
            return []
        with tracer.start_as_current_span(f"rbac.{self.definition.name}.list_by_owner"):
            if not await self._compiler.can_access_owner(user, owner_id):
                logger.info(
                    "rbac.list_by_owner.denied",
                    extra={"entity": self.definition.name, "owner_id": owner_id, "user_id": user.user_id},
                )
                return []

            predicate = and_(
                Eq(TENANT_FIELD, user.tenant_id),
                Eq(DELETED_FIELD, False),
                Eq(self.owner_field, owner_id),
            )
            return await self._store.query_by_tenant(self.definition.table, user.tenant_id, predicate)

    async def list_by_attribute_for_user(self, user: RBACUser, field_name: str, value: Any) -> list[dict[str, Any]]:
        accessible = await self.list_for_user(user)
        return [record for record in accessible if record.get(field_name) == value]

    async def search_for_user(self, user: RBACUser, term: str) -> list[dict[str, Any]]:
        # TODO: push the substring match into the store once a backend supports text predicates.
        accessible = await self.list_for_user(user)
        results = [record for record in accessible if matches_term(record, self.definition.search_fields, term)]
        logger.info(
            "rbac.search",
            extra={"entity": self.definition.name, "user_id": user.user_id, "result_count": len(results)},
        )
        return results
