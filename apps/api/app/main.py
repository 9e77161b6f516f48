from contextlib import asynccontextmanager
import logging
from typing import Any

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.events import InternalEvent, event_bus
from app.logging import configure_logging
from app.middleware.request_context import RequestContextMiddleware
from app.otel import get_fastapi_server_request_hook, setup_otel
from app.platform.security.policies import build_default_policy_backend, set_policy_backend


configure_logging()
logger = logging.getLogger("app.lifecycle")
_subscriptions_registered = False

_quote_event_types = [
    "billing.quote.created",
    "billing.quote.sent",
    "billing.quote.accepted",
    "billing.quote.rejected",
    "billing.quote.cancelled",
    "billing.quote.expired",
    "billing.quote.reminder",
]


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_quote_event(event: InternalEvent) -> None:
    if not isinstance(event.payload, dict):
        return
    envelope: dict[str, Any] = event.payload
    logger.info(
        "quote_event",
        extra={
            "event_name": event.name,
            "quote_id": envelope.get("quote_id"),
            "quote_number": envelope.get("quote_number"),
            "status": envelope.get("status"),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        for event_name in _quote_event_types:
            event_bus.subscribe(event_name, _on_quote_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "api"})
    yield


settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.include_router(api_router)

set_policy_backend(build_default_policy_backend(default_allow=settings.authz_default_allow))

if settings.otel_enabled:
    setup_otel("api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
