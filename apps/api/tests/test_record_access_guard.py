from __future__ import annotations

import asyncio
import itertools
from typing import Any

import pytest

from crm_rbac.platform.security.context import RBACUser
from crm_rbac.platform.security.directory import DirectoryResolver
from crm_rbac.platform.security.filters import evaluate, read_field
from crm_rbac.platform.security.guard import DenialReason, RecordAccessGuard
from crm_rbac.platform.security.ownership import OwnershipFilterCompiler
from crm_rbac.storage.memory import InMemoryDirectory


OWNER_FIELD = "leadOwner"
OWNERS: list[Any] = ["admin-a", "manager-m", "rep-r1", "rep-r2", "stranger", None, 7, "7"]
# Omitted, real booleans, and loosely-typed values seen in imported documents.
DELETED_VALUES: list[Any] = [None, False, True, 0, 1, "", "false", "yes"]


def _guard(directory: InMemoryDirectory) -> tuple[OwnershipFilterCompiler, RecordAccessGuard]:
    compiler = OwnershipFilterCompiler(DirectoryResolver(directory))
    return compiler, RecordAccessGuard(compiler)


def _records() -> list[dict[str, Any]]:
    records = []
    for index, (tenant, owner, deleted) in enumerate(itertools.product(["tenant-1", "tenant-2"], OWNERS, DELETED_VALUES)):
        record: dict[str, Any] = {"id": f"rec-{index}", "tenantId": tenant}
        if owner is not None:
            record[OWNER_FIELD] = owner
        if deleted is not None:
            record["isDeleted"] = deleted
        records.append(record)
    return records


def _all_users(users: dict[str, RBACUser]) -> list[RBACUser]:
    return [
        *users.values(),
        RBACUser(user_id="intern-x", tenant_id="tenant-1", role="intern"),
        RBACUser(user_id="7", tenant_id="tenant-1", role="SALES_REP"),
    ]


def test_guard_agrees_with_compiled_filter(directory: InMemoryDirectory, users: dict[str, RBACUser]) -> None:
    compiler, guard = _guard(directory)

    async def check() -> None:
        for user in _all_users(users):
            for allow_deleted in (False, True):
                predicate = await compiler.compile(user, OWNER_FIELD, include_deleted=allow_deleted)
                for record in _records():
                    allowed = await guard.can_access(record, user, OWNER_FIELD, allow_deleted=allow_deleted)
                    assert allowed == evaluate(predicate, record), (user, record, allow_deleted)

    asyncio.run(check())


def test_tenant_isolation_for_every_role(directory: InMemoryDirectory, users: dict[str, RBACUser]) -> None:
    _, guard = _guard(directory)

    async def check() -> None:
        for user in _all_users(users):
            for record in _records():
                if record["tenantId"] == user.tenant_id:
                    continue
                assert not await guard.can_access(record, user, OWNER_FIELD)
                assert await guard.denial_reason(record, user, OWNER_FIELD) is DenialReason.TENANT

    asyncio.run(check())


def test_admin_sees_every_live_record_in_tenant(directory: InMemoryDirectory, users: dict[str, RBACUser]) -> None:
    _, guard = _guard(directory)
    live = [
        record for record in _records() if record["tenantId"] == "tenant-1" and read_field(record, "isDeleted") == False  # noqa: E712
    ]

    async def check() -> None:
        for record in live:
            assert await guard.can_access(record, users["A"], OWNER_FIELD)

    asyncio.run(check())


@pytest.mark.parametrize(
    ("user_key", "visible_owners"),
    [
        ("M", {"manager-m", "rep-r1"}),
        ("R1", {"rep-r1"}),
        ("R2", {"rep-r2"}),
    ],
)
def test_ownership_by_role(
    directory: InMemoryDirectory,
    users: dict[str, RBACUser],
    user_key: str,
    visible_owners: set[str],
) -> None:
    _, guard = _guard(directory)
    user = users[user_key]

    async def check() -> None:
        for owner in OWNERS:
            record = {"id": "r", "tenantId": "tenant-1", OWNER_FIELD: owner}
            assert await guard.can_access(record, user, OWNER_FIELD) == (owner in visible_owners)

    asyncio.run(check())


def test_soft_deleted_records_are_denied_unless_allowed(directory: InMemoryDirectory, users: dict[str, RBACUser]) -> None:
    _, guard = _guard(directory)
    record = {"id": "r", "tenantId": "tenant-1", OWNER_FIELD: "rep-r1", "isDeleted": True}

    assert asyncio.run(guard.denial_reason(record, users["A"], OWNER_FIELD)) is DenialReason.DELETED
    assert asyncio.run(guard.can_access(record, users["R1"], OWNER_FIELD, allow_deleted=True))
    assert not asyncio.run(guard.can_access(record, users["R2"], OWNER_FIELD, allow_deleted=True))


def test_unknown_role_is_denied(directory: InMemoryDirectory) -> None:
    _, guard = _guard(directory)
    user = RBACUser(user_id="intern-x", tenant_id="tenant-1", role="intern")
    record = {"id": "r", "tenantId": "tenant-1", OWNER_FIELD: "intern-x"}

    assert asyncio.run(guard.denial_reason(record, user, OWNER_FIELD)) is DenialReason.OWNERSHIP


def test_manager_own_record_skips_directory_lookup(users: dict[str, RBACUser]) -> None:
    class CountingDirectory(InMemoryDirectory):
        calls = 0

        async def find_reports(self, manager_id: str, tenant_id: str) -> list[dict[str, Any]]:
            CountingDirectory.calls += 1
            return await super().find_reports(manager_id, tenant_id)

    _, guard = _guard(CountingDirectory())
    record = {"id": "r", "tenantId": "tenant-1", OWNER_FIELD: "manager-m"}

    assert asyncio.run(guard.can_access(record, users["M"], OWNER_FIELD))
    assert CountingDirectory.calls == 0


def test_owner_values_are_compared_without_coercion(directory: InMemoryDirectory) -> None:
    compiler, guard = _guard(directory)
    rep = RBACUser(user_id="7", tenant_id="tenant-1", role="SALES_REP")
    numeric_owner = {"id": "r", "tenantId": "tenant-1", OWNER_FIELD: 7, "isDeleted": False}

    predicate = asyncio.run(compiler.compile(rep, OWNER_FIELD))

    assert asyncio.run(guard.can_access(numeric_owner, rep, OWNER_FIELD)) is False
    assert evaluate(predicate, numeric_owner) is False


@pytest.mark.parametrize("flag", ["", "false", 1, "yes"])
def test_non_boolean_deleted_flag_counts_as_deleted(directory: InMemoryDirectory, users: dict[str, RBACUser], flag: Any) -> None:
    _, guard = _guard(directory)
    record = {"id": "r", "tenantId": "tenant-1", OWNER_FIELD: "rep-r1", "isDeleted": flag}

    assert asyncio.run(guard.denial_reason(record, users["R1"], OWNER_FIELD)) is DenialReason.DELETED
    assert asyncio.run(guard.can_access(record, users["R1"], OWNER_FIELD, allow_deleted=True))
