from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from crm_rbac.platform.security.context import RBACUser
from crm_rbac.platform.security.filters import DELETED_FIELD, TENANT_FIELD, read_field
from crm_rbac.platform.security.ownership import OwnershipFilterCompiler


class DenialReason(StrEnum):
    TENANT = "tenant"
    DELETED = "deleted"
    OWNERSHIP = "ownership"


class RecordAccessGuard:
    """Per-record counterpart of :class:`OwnershipFilterCompiler`.

    For every record ``r``, user ``u`` and flag ``d``,
    ``can_access(r, u, f, allow_deleted=d)`` is true exactly when ``r``
    satisfies ``compile(u, f, include_deleted=d)``. Both sides compare raw
    attribute values through :func:`read_field`.
    """

    def __init__(self, compiler: OwnershipFilterCompiler) -> None:
        self._compiler = compiler

    async def denial_reason(
        self,
        record: Mapping[str, Any],
        user: RBACUser,
        owner_field: str,
        *,
        allow_deleted: bool = False,
    ) -> DenialReason | None:
        if read_field(record, TENANT_FIELD) != user.tenant_id:
            return DenialReason.TENANT
        if not allow_deleted and read_field(record, DELETED_FIELD) != False:  # noqa: E712
            return DenialReason.DELETED

        owner_id = read_field(record, owner_field)
        if owner_id is None:
            # Only a tenant-wide grant can see an unowned record.
            owners = await self._compiler.accessible_owner_ids(user)
            return None if owners is None else DenialReason.OWNERSHIP
        if await self._compiler.can_access_owner(user, owner_id):
            return None
        return DenialReason.OWNERSHIP

    async def can_access(
        self,
        record: Mapping[str, Any],
        user: RBACUser,
        owner_field: str,
        *,
        allow_deleted: bool = False,
    ) -> bool:
        reason = await self.denial_reason(record, user, owner_field, allow_deleted=allow_deleted)
        return reason is None
