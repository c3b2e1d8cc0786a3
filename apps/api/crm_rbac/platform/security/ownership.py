from __future__ import annotations

from collections.abc import Collection
from typing import Any

from crm_rbac.platform.security.context import RBACUser
from crm_rbac.platform.security.directory import DirectoryResolver
from crm_rbac.platform.security.filters import DELETED_FIELD, NO_ACCESS, TENANT_FIELD, And, Eq, Filter, and_, in_
from crm_rbac.platform.security.roles import Role


def owner_clause(owner_field: str, owners: Collection[str]) -> Filter:
    if not owners:
        return Eq(owner_field, NO_ACCESS)
    if len(owners) == 1:
        return Eq(owner_field, next(iter(owners)))
    return in_(owner_field, owners)


class OwnershipFilterCompiler:
    """Compiles a user's record visibility into a filter for one owner field.

    The same instance serves every entity; only ``owner_field`` differs.
    Subordinates are resolved on every call.
    """

    def __init__(self, directory: DirectoryResolver) -> None:
        self._directory = directory

    async def accessible_owner_ids(self, user: RBACUser) -> frozenset[str] | None:
        """Owner ids whose records ``user`` may see; ``None`` means the whole tenant."""

        tier = user.tier
        if tier is Role.ADMIN:
            return None
        if tier is Role.SALES_MANAGER:
            subordinates = await self._directory.subordinates_of(user.user_id, user.tenant_id)
            return frozenset({user.user_id}) | subordinates
        if tier is Role.SALES_REP:
            return frozenset({user.user_id})
        return frozenset()

    async def compile(self, user: RBACUser, owner_field: str, include_deleted: bool = False) -> And:
        clauses: list[Filter] = [Eq(TENANT_FIELD, user.tenant_id)]
        if not include_deleted:
            clauses.append(Eq(DELETED_FIELD, False))

        owners = await self.accessible_owner_ids(user)
        if owners is not None:
            clauses.append(owner_clause(owner_field, owners))
        return and_(*clauses)

    async def can_access_owner(self, user: RBACUser, owner_id: Any) -> bool:
        tier = user.tier
        if tier is Role.ADMIN:
            return True
        if tier is Role.SALES_MANAGER:
            if owner_id == user.user_id:
                return True
            subordinates = await self._directory.subordinates_of(user.user_id, user.tenant_id)
            return owner_id in subordinates
        if tier is Role.SALES_REP:
            return owner_id == user.user_id
        return False
