from contextlib import asynccontextmanager, contextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from tenant_billing.api.routes import router as api_router
from tenant_billing.business.payments.service import FAILED_CHEQUE_EVENTS, register_cheque_handlers
from tenant_billing.core.config import get_settings
from tenant_billing.core.context import RequestContextMiddleware
from tenant_billing.core.database import SessionLocal, get_db
from tenant_billing.core.events import InternalEvent, event_bus
from tenant_billing.logging import configure_logging
from tenant_billing.middleware.correlation_id import CorrelationIdMiddleware
from tenant_billing.middleware.request_logging import RequestLoggingMiddleware
from tenant_billing.otel import get_fastapi_server_request_hook, setup_otel
from tenant_billing.platform.errors import BillingError


configure_logging()
logger = logging.getLogger("tenant_billing.lifecycle")


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


@contextmanager
def _session_scope():
    override = app.dependency_overrides.get(get_db) if "app" in globals() else None
    if override is None:
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()
        return

    generator = override()
    session = next(generator)
    try:
        yield session
    finally:
        try:
            next(generator)
        except StopIteration:
            pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    event_bus.subscribe("system.started", _on_system_started)
    cheque_handler = register_cheque_handlers(_session_scope)
    event_bus.publish("system.started", {"service": "api"})
    try:
        yield
    finally:
        for event_name in FAILED_CHEQUE_EVENTS:
            event_bus.unsubscribe(event_name, cheque_handler)
        event_bus.unsubscribe("system.started", _on_system_started)


app = FastAPI(title="Tenant Billing API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    body: dict[str, str] = {"detail": str(exc.detail), "code": exc.code}
    if exc.field:
        body["field"] = exc.field
    return JSONResponse(status_code=exc.status_code, content=body)


settings = get_settings()
if settings.otel_enabled:
    setup_otel("tenant-billing-api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
