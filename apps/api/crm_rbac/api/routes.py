from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from crm_rbac.core.auth import get_current_user
from crm_rbac.core.config import get_settings
from crm_rbac.crm.api import router as crm_router
from crm_rbac.metrics import generate_metrics_payload, metrics_content_type
from crm_rbac.platform.security.context import RBACUser
from crm_rbac.platform.security.roles import Role

router = APIRouter()
router.include_router(crm_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(user: RBACUser = Depends(get_current_user)) -> dict[str, str | None]:
    return {
        "userId": user.user_id,
        "tenantId": user.tenant_id,
        "role": user.tier.value if user.tier is not None else None,
        "email": user.email,
    }


@router.get("/metrics", tags=["system"])
def metrics(user: RBACUser = Depends(get_current_user)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if user.tier is not Role.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Metrics require the ADMIN role")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
