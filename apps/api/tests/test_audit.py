from __future__ import annotations

from collections.abc import Generator

import pytest

from crm_rbac import audit
from crm_rbac.context import reset_correlation_id, set_correlation_id
from crm_rbac.platform.security.context import RBACUser


@pytest.fixture(autouse=True)
def clear_audit() -> Generator[None, None, None]:
    audit.clear()
    yield
    audit.clear()


def _actor(tenant_id: str = "tenant-1", role: str = "admin") -> RBACUser:
    return RBACUser(user_id="admin-a", tenant_id=tenant_id, role=role)


def test_changed_fields_covers_added_removed_and_updated_keys() -> None:
    before = {"id": "l1", "isDeleted": False, "deletedBy": "rep-r1", "company": "Acme"}
    after = {"id": "l1", "isDeleted": True, "company": "Acme", "deletedAt": "2026-01-01T00:00:00+00:00"}

    assert audit.changed_fields(before, after) == ["deletedAt", "deletedBy", "isDeleted"]
    assert audit.changed_fields({"id": "l1"}, None) == ["id"]
    assert audit.changed_fields(None, None) == []


def test_record_captures_actor_and_tenant() -> None:
    token = set_correlation_id("corr-audit-1")
    try:
        entry = audit.record(_actor(), "crm.lead", "l1", "soft_delete", {"isDeleted": False}, {"isDeleted": True})
    finally:
        reset_correlation_id(token)

    assert entry["actor_user_id"] == "admin-a"
    assert entry["actor_role"] == "ADMIN"
    assert entry["tenant_id"] == "tenant-1"
    assert entry["changed_fields"] == ["isDeleted"]
    assert entry["correlation_id"] == "corr-audit-1"
    assert list(audit.audit_entries) == [entry]


def test_unknown_role_is_recorded_verbatim() -> None:
    entry = audit.record(_actor(role="intern"), "crm.lead", "l1", "restore", None, None)

    assert entry["actor_role"] == "intern"


def test_entries_for_filters_by_tenant() -> None:
    audit.record(_actor("tenant-1"), "crm.lead", "shared-id", "soft_delete", None, None)
    audit.record(_actor("tenant-2"), "crm.lead", "shared-id", "hard_delete", None, None)
    audit.record(_actor("tenant-1"), "crm.deal", "shared-id", "restore", None, None)

    assert [entry["action"] for entry in audit.entries_for("crm.lead", "shared-id")] == ["soft_delete", "hard_delete"]
    assert [entry["action"] for entry in audit.entries_for("crm.lead", "shared-id", tenant_id="tenant-2")] == ["hard_delete"]


def test_log_is_bounded_and_drops_oldest() -> None:
    assert audit.audit_entries.maxlen == audit.MAX_AUDIT_ENTRIES

    for index in range(audit.MAX_AUDIT_ENTRIES + 5):
        audit.record(_actor(), "crm.lead", f"lead-{index}", "soft_delete", None, None)

    assert len(audit.audit_entries) == audit.MAX_AUDIT_ENTRIES
    assert audit.entries_for("crm.lead", "lead-0") == []
    assert audit.entries_for("crm.lead", "lead-4") == []
    assert len(audit.entries_for("crm.lead", "lead-5")) == 1

    audit.clear()
    assert len(audit.audit_entries) == 0
