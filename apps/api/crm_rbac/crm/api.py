from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from crm_rbac.context import get_correlation_id
from crm_rbac.core.auth import get_current_user
from crm_rbac.core.container import RBACContainer, get_container
from crm_rbac.crm.schemas import LifecycleResult, ReportingLineUpdate
from crm_rbac.crm.service import EntityAccessService
from crm_rbac.platform.security.context import RBACUser
from crm_rbac.platform.security.errors import PolicyDenied, ReportingCycleError
from crm_rbac.platform.security.policies import Action

router = APIRouter(prefix="/api/crm", tags=["crm.records"])


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def _not_found(entity: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{entity} record not found")


def resolve_service(container: RBACContainer, entity: str) -> EntityAccessService:
    service = container.services.get(entity)
    if service is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown entity: {entity}")
    return service


def _failure(request: Request, entity: str, operation: str, exc: HTTPException | PolicyDenied) -> JSONResponse:
    if isinstance(exc, PolicyDenied):
        return error_response(
            request,
            status_code=status.HTTP_403_FORBIDDEN,
            code=f"crm_{entity}_{operation}_forbidden",
            message=str(exc),
            details={"action": exc.action, "resource": exc.resource_type},
        )
    return error_response(
        request,
        status_code=exc.status_code,
        code=f"crm_{entity}_{operation}_failed",
        message=str(exc.detail),
        details=exc.detail,
    )


@router.get("/{entity}", response_model=list[dict[str, Any]])
async def list_records(
    request: Request,
    entity: str,
    include_deleted: bool = Query(default=False, alias="includeDeleted"),
    user: RBACUser = Depends(get_current_user),
    container: RBACContainer = Depends(get_container),
) -> Any:
    try:
        service = resolve_service(container, entity)
        container.checker.require_permission(user, Action.VIEW, service.definition.resource_type)
        return await service.list_for_user(user, include_deleted=include_deleted)
    except (HTTPException, PolicyDenied) as exc:
        return _failure(request, entity, "list", exc)


@router.get("/{entity}/search", response_model=list[dict[str, Any]])
async def search_records(
    request: Request,
    entity: str,
    q: str = Query(default=""),
    user: RBACUser = Depends(get_current_user),
    container: RBACContainer = Depends(get_container),
) -> Any:
    try:
        service = resolve_service(container, entity)
        container.checker.require_permission(user, Action.VIEW, service.definition.resource_type)
        return await service.search_for_user(user, q)
    except (HTTPException, PolicyDenied) as exc:
        return _failure(request, entity, "search", exc)


@router.get("/{entity}/owners/{owner_id}", response_model=list[dict[str, Any]])
async def list_records_by_owner(
    request: Request,
    entity: str,
    owner_id: str,
    user: RBACUser = Depends(get_current_user),
    container: RBACContainer = Depends(get_container),
) -> Any:
    try:
        service = resolve_service(container, entity)
        container.checker.require_permission(user, Action.VIEW, service.definition.resource_type)
        return await service.list_by_owner_for_user(owner_id, user)
    except (HTTPException, PolicyDenied) as exc:
        return _failure(request, entity, "list_by_owner", exc)


@router.get("/{entity}/{record_id}", response_model=dict[str, Any])
async def get_record(
    request: Request,
    entity: str,
    record_id: str,
    user: RBACUser = Depends(get_current_user),
    container: RBACContainer = Depends(get_container),
) -> Any:
    try:
        service = resolve_service(container, entity)
        container.checker.require_permission(user, Action.VIEW, service.definition.resource_type)
        record = await service.get_by_id_for_user(record_id, user)
        if record is None:
            raise _not_found(entity)
        return record
    except (HTTPException, PolicyDenied) as exc:
        return _failure(request, entity, "get", exc)


@router.delete("/{entity}/{record_id}", response_model=LifecycleResult)
async def soft_delete_record(
    request: Request,
    entity: str,
    record_id: str,
    user: RBACUser = Depends(get_current_user),
    container: RBACContainer = Depends(get_container),
) -> Any:
    try:
        definition = resolve_service(container, entity).definition
        updated = await container.lifecycle.soft_delete_for_user(definition, record_id, user)
        if updated is None:
            raise _not_found(entity)
        return LifecycleResult(id=record_id, status="deleted")
    except (HTTPException, PolicyDenied) as exc:
        return _failure(request, entity, "delete", exc)


@router.post("/{entity}/{record_id}/restore", response_model=LifecycleResult)
async def restore_record(
    request: Request,
    entity: str,
    record_id: str,
    user: RBACUser = Depends(get_current_user),
    container: RBACContainer = Depends(get_container),
) -> Any:
    try:
        definition = resolve_service(container, entity).definition
        restored = await container.lifecycle.restore_for_user(definition, record_id, user)
        if restored is None:
            raise _not_found(entity)
        return LifecycleResult(id=record_id, status="restored")
    except (HTTPException, PolicyDenied) as exc:
        return _failure(request, entity, "restore", exc)


@router.delete("/{entity}/{record_id}/permanent", response_model=LifecycleResult)
async def hard_delete_record(
    request: Request,
    entity: str,
    record_id: str,
    user: RBACUser = Depends(get_current_user),
    container: RBACContainer = Depends(get_container),
) -> Any:
    try:
        definition = resolve_service(container, entity).definition
        if not await container.lifecycle.hard_delete_for_user(definition, record_id, user):
            raise _not_found(entity)
        return LifecycleResult(id=record_id, status="purged")
    except (HTTPException, PolicyDenied) as exc:
        return _failure(request, entity, "hard_delete", exc)


@router.put("/users/{user_id}/reporting-line", response_model=dict[str, Any])
async def update_reporting_line(
    request: Request,
    user_id: str,
    payload: ReportingLineUpdate,
    user: RBACUser = Depends(get_current_user),
    container: RBACContainer = Depends(get_container),
) -> Any:
    try:
        updated = await container.reporting.assign_manager_for_user(user, user_id, payload.manager_id)
        if updated is None:
            raise _not_found("users")
        return updated
    except ReportingCycleError as exc:
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="crm_users_reporting_line_invalid",
            message=str(exc),
            details={"userId": exc.user_id, "managerId": exc.manager_id, "reason": exc.reason},
        )
    except (HTTPException, PolicyDenied) as exc:
        return _failure(request, "users", "reporting_line", exc)
