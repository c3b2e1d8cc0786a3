from __future__ import annotations

import re
import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from crm_rbac.context import reset_correlation_id, set_correlation_id
from crm_rbac.platform.security.context import RBACUser


CORRELATION_HEADER = "x-correlation-id"
_SAFE_CORRELATION_ID = re.compile(r"[A-Za-z0-9._:-]{1,128}")


def resolve_correlation_id(raw: str | None) -> str:
    """Reuse the caller's id when it is safe to echo into logs and headers."""

    if raw and _SAFE_CORRELATION_ID.fullmatch(raw):
        return raw
    return str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = resolve_correlation_id(request.headers.get(CORRELATION_HEADER))
        request.state.correlation_id = correlation_id
        token = set_correlation_id(correlation_id)
        span = trace.get_current_span()
        recording = span is not None and span.is_recording()
        if recording:
            span.set_attribute("correlation_id", correlation_id)
        try:
            response = await call_next(request)
        finally:
            reset_correlation_id(token)

        # Set by the auth dependency once the bearer token is accepted.
        principal = getattr(request.state, "principal", None)
        if recording and isinstance(principal, RBACUser):
            span.set_attribute("rbac.tenant_id", principal.tenant_id)
            span.set_attribute("rbac.user_id", principal.user_id)
            tier = principal.tier
            span.set_attribute("rbac.role", tier.value if tier is not None else "unknown")

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
