from __future__ import annotations

import uuid
from collections import deque
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from crm_rbac.context import get_correlation_id
from crm_rbac.platform.security.context import RBACUser

MAX_AUDIT_ENTRIES = 10_000

# Oldest entries fall off once the log is full.
audit_entries: deque[dict[str, Any]] = deque(maxlen=MAX_AUDIT_ENTRIES)


def changed_fields(before: Mapping[str, Any] | None, after: Mapping[str, Any] | None) -> list[str]:
    before = before or {}
    after = after or {}
    return sorted(key for key in before.keys() | after.keys() if before.get(key) != after.get(key))


def record(
    actor: RBACUser,
    entity_type: str,
    entity_id: str,
    action: str,
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
) -> dict[str, Any]:
    """Append one mutation made by ``actor`` inside the actor's tenant."""

    tier = actor.tier
    entry = {
        "id": str(uuid.uuid4()),
        "actor_user_id": actor.user_id,
        "actor_role": tier.value if tier is not None else actor.role,
        "tenant_id": actor.tenant_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "action": action,
        "changed_fields": changed_fields(before, after),
        "before": before,
        "after": after,
        "correlation_id": actor.correlation_id or get_correlation_id(),
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }
    audit_entries.append(entry)
    return entry


def entries_for(entity_type: str, entity_id: str, *, tenant_id: str | None = None) -> list[dict[str, Any]]:
    return [
        entry
        for entry in audit_entries
        if entry["entity_type"] == entity_type
        and entry["entity_id"] == entity_id
        and (tenant_id is None or entry["tenant_id"] == tenant_id)
    ]


def clear() -> None:
    audit_entries.clear()
