from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from crm_rbac.platform.security.filters import DELETED_FIELD, NO_ACCESS
from crm_rbac.platform.security.policies import ResourceType


@dataclass(frozen=True, slots=True)
class EntityDefinition:
    """Storage routing and ownership convention for one CRM entity."""

    name: str
    table: str
    resource_type: ResourceType
    owner_field: str
    search_fields: tuple[str, ...]
    owner_aliases: tuple[str, ...] = ()
    lookup_fields: tuple[str, ...] = field(default=())

    @property
    def indexed_fields(self) -> tuple[str, ...]:
        return (self.owner_field, *self.lookup_fields)

    def owner_of(self, record: Mapping[str, Any]) -> str | None:
        value = record.get(self.owner_field)
        return str(value) if value is not None else None

    def prepare(self, document: Mapping[str, Any]) -> dict[str, Any]:
        """Canonical stored form.

        The owner is copied from an alias when missing and stored as a string.
        ``isDeleted`` is always a real boolean, so the SQL column and the
        in-memory comparison see the same value.
        """

        prepared = dict(document)
        if not prepared.get(self.owner_field):
            for alias in self.owner_aliases:
                if prepared.get(alias):
                    prepared[self.owner_field] = prepared[alias]
                    break
        owner = prepared.get(self.owner_field)
        if owner is not None:
            if owner == NO_ACCESS:
                raise ValueError(f"{self.name}: '{NO_ACCESS}' is reserved and cannot own a record")
            prepared[self.owner_field] = str(owner)
        prepared[DELETED_FIELD] = bool(prepared.get(DELETED_FIELD, False))
        return prepared


LEADS = EntityDefinition(
    name="leads",
    table="leads",
    resource_type=ResourceType.LEAD,
    owner_field="leadOwner",
    search_fields=("firstName", "lastName", "company", "email"),
)

CONTACTS = EntityDefinition(
    name="contacts",
    table="contacts",
    resource_type=ResourceType.CONTACT,
    owner_field="contactOwner",
    search_fields=("firstName", "lastName", "companyName", "email"),
)

DEALS = EntityDefinition(
    name="deals",
    table="deals",
    resource_type=ResourceType.DEAL,
    owner_field="dealOwner",
    search_fields=("dealName", "description", "leadSource", "email"),
    lookup_fields=("stage",),
)

PRODUCTS = EntityDefinition(
    name="products",
    table="products",
    resource_type=ResourceType.PRODUCT,
    owner_field="productOwner",
    search_fields=("name", "productCode", "description", "notes", "category", "sku"),
    lookup_fields=("category",),
)

QUOTES = EntityDefinition(
    name="quotes",
    table="quotes",
    resource_type=ResourceType.QUOTE,
    owner_field="quoteOwner",
    search_fields=("quoteName", "quoteNumber", "description", "notes", "terms"),
)

TASKS = EntityDefinition(
    name="tasks",
    table="tasks",
    resource_type=ResourceType.TASK,
    owner_field="assignedTo",
    owner_aliases=("assignee",),
    search_fields=("title", "description", "notes", "type"),
    lookup_fields=("status", "dueDate"),
)

SUBSIDIARIES = EntityDefinition(
    name="subsidiaries",
    table="subsidiaries",
    resource_type=ResourceType.SUBSIDIARY,
    owner_field="createdBy",
    search_fields=("name", "email", "address", "contact"),
)

DEALERS = EntityDefinition(
    name="dealers",
    table="dealers",
    resource_type=ResourceType.DEALER,
    owner_field="createdBy",
    search_fields=("name", "email", "phone", "company", "address"),
)

ENTITIES: dict[str, EntityDefinition] = {
    definition.name: definition
    for definition in (LEADS, CONTACTS, DEALS, PRODUCTS, QUOTES, TASKS, SUBSIDIARIES, DEALERS)
}
