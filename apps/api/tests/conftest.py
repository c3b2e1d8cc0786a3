from __future__ import annotations

import copy
from typing import Any

import pytest

from crm_rbac.core.container import RBACContainer, build_container
from crm_rbac.crm.entities import LEADS
from crm_rbac.platform.security.context import RBACUser
from crm_rbac.storage.memory import InMemoryDirectory, InMemoryRecordStore


T1 = "tenant-1"
T2 = "tenant-2"

DIRECTORY_USERS: list[dict[str, Any]] = [
    {"userId": "admin-a", "email": "a@t1.example", "role": "ADMIN", "tenantId": T1},
    {"userId": "manager-m", "email": "m@t1.example", "role": "SALES_MANAGER", "tenantId": T1},
    {"userId": "rep-r1", "email": "r1@t1.example", "role": "SALES_REP", "tenantId": T1, "reportingTo": "manager-m"},
    {"userId": "rep-r2", "email": "r2@t1.example", "role": "SALES_REP", "tenantId": T1},
    {"userId": "admin-b", "email": "b@t2.example", "role": "ADMIN", "tenantId": T2},
]

SCENARIO_LEADS: list[dict[str, Any]] = [
    {"id": "lead-a", "tenantId": T1, "leadOwner": "admin-a", "firstName": "Ada", "company": "Acme", "email": "ada@acme.io"},
    {"id": "lead-m", "tenantId": T1, "leadOwner": "manager-m", "firstName": "Mona", "company": "Globex", "email": "mona@globex.io"},
    {"id": "lead-r1", "tenantId": T1, "leadOwner": "rep-r1", "firstName": "Rick", "company": "Initech", "email": "rick@initech.io"},
    {"id": "lead-r2", "tenantId": T1, "leadOwner": "rep-r2", "firstName": "Rosa", "company": "Acme", "email": "rosa@acme.io"},
    {
        "id": "lead-r1-deleted",
        "tenantId": T1,
        "leadOwner": "rep-r1",
        "firstName": "Gone",
        "company": "Acme",
        "isDeleted": True,
        "deletedBy": "rep-r1",
    },
    {"id": "lead-t2", "tenantId": T2, "leadOwner": "admin-b", "firstName": "Tess", "company": "Acme"},
]


def make_user(user_id: str, role: str, tenant_id: str = T1, **kwargs: Any) -> RBACUser:
    return RBACUser(user_id=user_id, tenant_id=tenant_id, role=role, email=f"{user_id}@example.com", **kwargs)


@pytest.fixture()
def users() -> dict[str, RBACUser]:
    return {
        "A": make_user("admin-a", "ADMIN"),
        "M": make_user("manager-m", "SALES_MANAGER"),
        "R1": make_user("rep-r1", "SALES_REP", reporting_to="manager-m"),
        "R2": make_user("rep-r2", "SALES_REP"),
        "B": make_user("admin-b", "ADMIN", tenant_id=T2),
    }


@pytest.fixture()
def directory() -> InMemoryDirectory:
    return InMemoryDirectory(DIRECTORY_USERS)


@pytest.fixture()
def store() -> InMemoryRecordStore:
    record_store = InMemoryRecordStore()
    for lead in SCENARIO_LEADS:
        record_store.put(LEADS.table, LEADS.prepare(lead))
    return record_store


@pytest.fixture()
def container(store: InMemoryRecordStore, directory: InMemoryDirectory) -> RBACContainer:
    return build_container(store, directory)


@pytest.fixture()
def directory_users() -> list[dict[str, Any]]:
    return copy.deepcopy(DIRECTORY_USERS)


@pytest.fixture()
def scenario_leads() -> list[dict[str, Any]]:
    return copy.deepcopy(SCENARIO_LEADS)
