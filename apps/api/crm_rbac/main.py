import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from crm_rbac.api.routes import router as api_router
from crm_rbac.core.config import get_settings
from crm_rbac.logging import configure_logging
from crm_rbac.middleware.correlation_id import CorrelationIdMiddleware
from crm_rbac.middleware.request_logging import RequestLoggingMiddleware
from crm_rbac.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("crm_rbac.app")

settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

if settings.otel_enabled:
    setup_otel("crm-rbac", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())

logger.info("app.started", extra={"operation": "startup"})
