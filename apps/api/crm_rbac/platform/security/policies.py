from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import StrEnum
from functools import lru_cache
from types import MappingProxyType

from crm_rbac.platform.security.roles import Role, normalize_role


class Action(StrEnum):
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"
    CREATE = "create"


class ResourceType(StrEnum):
    LEAD = "lead"
    CONTACT = "contact"
    DEAL = "deal"
    PRODUCT = "product"
    QUOTE = "quote"
    TASK = "task"
    SUBSIDIARY = "subsidiary"
    DEALER = "dealer"
    USER = "user"


BUSINESS_RESOURCES = frozenset(
    {
        ResourceType.LEAD,
        ResourceType.CONTACT,
        ResourceType.DEAL,
        ResourceType.PRODUCT,
        ResourceType.QUOTE,
        ResourceType.TASK,
    }
)
ORGANIZATIONAL_RESOURCES = frozenset({ResourceType.SUBSIDIARY, ResourceType.DEALER})
ALL_ACTIONS = frozenset(Action)

CapabilityTable = Mapping[Role, Mapping[ResourceType, frozenset[Action]]]


class AccessPolicy:
    """Static role x resource-type x action capability table.

    The table is frozen at construction; build a new policy to substitute
    different capabilities.
    """

    def __init__(self, table: Mapping[Role, Mapping[ResourceType, Iterable[Action]]]) -> None:
        frozen: dict[Role, Mapping[ResourceType, frozenset[Action]]] = {}
        for role, grants in table.items():
            frozen[Role(role)] = MappingProxyType(
                {ResourceType(resource): frozenset(Action(action) for action in actions) for resource, actions in grants.items()}
            )
        self._table: CapabilityTable = MappingProxyType(frozen)

    @property
    def table(self) -> CapabilityTable:
        return self._table

    def is_permitted(self, role: Role | str | None, action: Action | str, resource_type: ResourceType | str) -> bool:
        tier = role if isinstance(role, Role) else normalize_role(role)
        if tier is None:
            return False
        try:
            resolved_action = Action(action)
            resolved_resource = ResourceType(resource_type)
        except ValueError:
            return False
        grants = self._table.get(tier)
        if grants is None:
            return False
        return resolved_action in grants.get(resolved_resource, frozenset())

    def allowed_actions(self, role: Role | str | None, resource_type: ResourceType | str) -> frozenset[Action]:
        return frozenset(action for action in Action if self.is_permitted(role, action, resource_type))


def default_capabilities() -> dict[Role, dict[ResourceType, frozenset[Action]]]:
    view_only = frozenset({Action.VIEW})
    none: frozenset[Action] = frozenset()
    return {
        Role.ADMIN: {resource: ALL_ACTIONS for resource in ResourceType},
        Role.SALES_MANAGER: {
            **{resource: ALL_ACTIONS for resource in BUSINESS_RESOURCES},
            **{resource: view_only for resource in ORGANIZATIONAL_RESOURCES},
            ResourceType.USER: none,
        },
        Role.SALES_REP: {
            **{resource: ALL_ACTIONS for resource in BUSINESS_RESOURCES},
            **{resource: none for resource in ORGANIZATIONAL_RESOURCES},
            ResourceType.USER: none,
        },
    }


@lru_cache
def get_access_policy() -> AccessPolicy:
    return AccessPolicy(default_capabilities())
