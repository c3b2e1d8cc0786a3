from __future__ import annotations

import asyncio
from collections.abc import Generator
from typing import Any

import pytest

from crm_rbac import audit
from crm_rbac.core.container import RBACContainer, build_container, build_sql_backend, create_sql_engine
from crm_rbac.platform.security.context import RBACUser
from crm_rbac.platform.security.errors import PolicyDenied, ReportingCycleError
from crm_rbac.storage.memory import InMemoryDirectory, InMemoryRecordStore


@pytest.fixture(autouse=True)
def clear_audit() -> Generator[None, None, None]:
    audit.clear()
    yield
    audit.clear()


def test_admin_reassigns_manager(container: RBACContainer, directory: InMemoryDirectory, users: dict[str, RBACUser]) -> None:
    updated = asyncio.run(container.reporting.assign_manager_for_user(users["A"], "rep-r2", "manager-m"))

    assert updated is not None
    assert updated["reportingTo"] == "manager-m"
    assert asyncio.run(directory.get_user("rep-r2"))["reportingTo"] == "manager-m"

    entries = audit.entries_for("directory.user", "rep-r2", tenant_id="tenant-1")
    assert len(entries) == 1
    assert entries[0]["action"] == "reassign_manager"
    assert entries[0]["changed_fields"] == ["reportingTo"]
    assert entries[0]["actor_role"] == "ADMIN"


def test_new_line_changes_manager_visibility(container: RBACContainer, users: dict[str, RBACUser]) -> None:
    leads = container.service("leads")
    assert asyncio.run(leads.get_by_id_for_user("lead-r2", users["M"])) is None

    asyncio.run(container.reporting.assign_manager_for_user(users["A"], "rep-r2", "manager-m"))

    assert asyncio.run(leads.get_by_id_for_user("lead-r2", users["M"]))["id"] == "lead-r2"


def test_clearing_manager_removes_line(container: RBACContainer, directory: InMemoryDirectory, users: dict[str, RBACUser]) -> None:
    updated = asyncio.run(container.reporting.assign_manager_for_user(users["A"], "rep-r1", ""))

    assert updated is not None
    assert "reportingTo" not in updated
    assert asyncio.run(directory.find_reports("manager-m", "tenant-1")) == []


@pytest.mark.parametrize("actor", ["M", "R1"])
def test_only_user_editors_can_reassign(
    container: RBACContainer, directory: InMemoryDirectory, users: dict[str, RBACUser], actor: str
) -> None:
    with pytest.raises(PolicyDenied):
        asyncio.run(container.reporting.assign_manager_for_user(users[actor], "rep-r2", "manager-m"))

    assert "reportingTo" not in asyncio.run(directory.get_user("rep-r2"))
    assert audit.entries_for("directory.user", "rep-r2") == []


@pytest.mark.parametrize(
    ("user_id", "manager_id", "reason"),
    [
        ("manager-m", "rep-r1", "cycle"),
        ("rep-r2", "rep-r2", "themselves"),
        ("rep-r2", "admin-b", "another tenant"),
        ("rep-r2", "ghost", "not found"),
    ],
)
def test_invalid_line_is_rejected_before_write(
    container: RBACContainer,
    directory: InMemoryDirectory,
    users: dict[str, RBACUser],
    user_id: str,
    manager_id: str,
    reason: str,
) -> None:
    before = asyncio.run(directory.get_user(user_id))

    with pytest.raises(ReportingCycleError, match=reason):
        asyncio.run(container.reporting.assign_manager_for_user(users["A"], user_id, manager_id))

    assert asyncio.run(directory.get_user(user_id)) == before
    assert len(audit.audit_entries) == 0


@pytest.mark.parametrize("user_id", ["admin-b", "nobody"])
def test_target_outside_tenant_is_not_found(container: RBACContainer, users: dict[str, RBACUser], user_id: str) -> None:
    assert asyncio.run(container.reporting.assign_manager_for_user(users["A"], user_id, "manager-m")) is None


def test_deleted_target_is_not_found(directory_users: list[dict[str, Any]], users: dict[str, RBACUser]) -> None:
    directory = InMemoryDirectory(directory_users)
    directory.add_user({"userId": "rep-old", "role": "SALES_REP", "tenantId": "tenant-1", "isDeleted": True})
    container = build_container(InMemoryRecordStore(), directory)

    assert asyncio.run(container.reporting.assign_manager_for_user(users["A"], "rep-old", "manager-m")) is None
    assert "reportingTo" not in asyncio.run(directory.get_user("rep-old"))


def test_sql_directory_persists_reporting_line(directory_users: list[dict[str, Any]], users: dict[str, RBACUser]) -> None:
    store, directory = build_sql_backend(create_sql_engine("sqlite+pysqlite:///:memory:"))
    for user in directory_users:
        directory.add_user(user)
    container = build_container(store, directory)

    asyncio.run(container.reporting.assign_manager_for_user(users["A"], "rep-r2", "manager-m"))

    reports = asyncio.run(directory.find_reports("manager-m", "tenant-1"))
    assert sorted(user["userId"] for user in reports) == ["rep-r1", "rep-r2"]

    with pytest.raises(ReportingCycleError):
        asyncio.run(container.reporting.assign_manager_for_user(users["A"], "manager-m", "rep-r2"))

    asyncio.run(container.reporting.assign_manager_for_user(users["A"], "rep-r1", None))
    assert [user["userId"] for user in asyncio.run(directory.find_reports("manager-m", "tenant-1"))] == ["rep-r2"]
    assert asyncio.run(directory.set_reporting_to("nobody", "manager-m")) is None
