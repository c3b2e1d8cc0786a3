from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy import MetaData, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from crm_rbac.core.config import get_settings
from crm_rbac.crm.entities import ENTITIES, EntityDefinition
from crm_rbac.crm.lifecycle import RecordLifecycleService
from crm_rbac.crm.reporting import ReportingLineService
from crm_rbac.crm.service import EntityAccessService
from crm_rbac.platform.security.directory import DirectoryClient, DirectoryResolver
from crm_rbac.platform.security.guard import RecordAccessGuard
from crm_rbac.platform.security.ownership import OwnershipFilterCompiler
from crm_rbac.platform.security.permissions import PermissionChecker
from crm_rbac.platform.security.policies import AccessPolicy, get_access_policy
from crm_rbac.storage.base import RecordStore
from crm_rbac.storage.memory import InMemoryDirectory, InMemoryRecordStore
from crm_rbac.storage.sql import SqlDirectory, SqlRecordStore, define_entity_table, define_users_table


@dataclass
class RBACContainer:
    store: RecordStore
    directory: DirectoryResolver
    compiler: OwnershipFilterCompiler
    guard: RecordAccessGuard
    checker: PermissionChecker
    lifecycle: RecordLifecycleService
    reporting: ReportingLineService
    services: dict[str, EntityAccessService]

    @property
    def policy(self) -> AccessPolicy:
        return self.checker.policy

    def service(self, entity: str) -> EntityAccessService:
        try:
            return self.services[entity]
        except KeyError as exc:
            raise KeyError(f"Unknown entity '{entity}'") from exc

    def definition(self, entity: str) -> EntityDefinition:
        return self.service(entity).definition


def build_container(
    store: RecordStore,
    directory_client: DirectoryClient,
    *,
    policy: AccessPolicy | None = None,
    reporting_max_depth: int = 32,
) -> RBACContainer:
    directory = DirectoryResolver(directory_client, max_depth=reporting_max_depth)
    compiler = OwnershipFilterCompiler(directory)
    guard = RecordAccessGuard(compiler)
    checker = PermissionChecker(policy or get_access_policy(), guard)
    services = {
        name: EntityAccessService(definition, store, compiler, guard, checker)
        for name, definition in ENTITIES.items()
    }
    return RBACContainer(
        store=store,
        directory=directory,
        compiler=compiler,
        guard=guard,
        checker=checker,
        lifecycle=RecordLifecycleService(store, checker, guard),
        reporting=ReportingLineService(directory_client, directory, checker),
        services=services,
    )


def build_sql_backend(engine: Engine) -> tuple[SqlRecordStore, SqlDirectory]:
    metadata = MetaData()
    tables = {
        definition.table: define_entity_table(metadata, definition.table, definition.indexed_fields)
        for definition in ENTITIES.values()
    }
    users = define_users_table(metadata)
    metadata.create_all(engine)
    return SqlRecordStore(engine, tables), SqlDirectory(engine, users)


def create_sql_engine(database_url: str) -> Engine:
    if database_url.endswith(":memory:"):
        return create_engine(database_url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(database_url)


@lru_cache
def get_container() -> RBACContainer:
    settings = get_settings()
    if settings.storage_backend.lower() == "sql":
        store, directory_client = build_sql_backend(create_sql_engine(settings.database_url))
        return build_container(store, directory_client, reporting_max_depth=settings.reporting_max_depth)
    return build_container(
        InMemoryRecordStore(),
        InMemoryDirectory(),
        reporting_max_depth=settings.reporting_max_depth,
    )
