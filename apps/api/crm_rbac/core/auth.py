from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import HTTPException, status
from jose import JWTError, jwt
from starlette.requests import Request

from crm_rbac.context import get_correlation_id
from crm_rbac.core.config import get_settings
from crm_rbac.platform.security.context import RBACUser


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(claims: dict[str, Any], expires_in: timedelta = timedelta(hours=1)) -> str:
    settings = get_settings()
    payload = dict(claims)
    payload.setdefault("exp", datetime.now(timezone.utc) + expires_in)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


async def get_current_user(request: Request) -> RBACUser:
    auth_header = request.headers.get("authorization", "")
    token = auth_header[len("Bearer ") :] if auth_header.startswith("Bearer ") else ""
    if not token:
        raise _unauthorized("Missing bearer token")

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise _unauthorized("Invalid bearer token") from exc

    subject = payload.get("sub")
    tenant_id = payload.get("tenantId")
    if not subject or not tenant_id:
        raise _unauthorized("Token is missing subject or tenant")

    reporting_to = payload.get("reportingTo")
    user = RBACUser(
        user_id=str(subject),
        tenant_id=str(tenant_id),
        role=str(payload.get("role") or ""),
        email=str(payload.get("email") or ""),
        reporting_to=str(reporting_to) if reporting_to else None,
        correlation_id=get_correlation_id() or getattr(request.state, "correlation_id", None),
    )
    request.state.principal = user
    return user
