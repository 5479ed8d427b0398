"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000

Or from the project root:
    python -m uvicorn backend.app.main:app --reload
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.config import settings
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware
from backend.app.core.health import HealthStatus, run_health_check

# ── Services ──
from backend.app.access.roles import RoleRegistry
from backend.app.alerts.channels.providers import build_providers
from backend.app.alerts.contacts_store import build_contacts_store
from backend.app.alerts.dispatcher import AlertDispatcher

# ── API routers ──
from backend.app.api.v1.alerts import router as alert_router
from backend.app.api.v1.roles import router as roles_router

setup_logging()
logger = get_logger(__name__)


# ── Application lifespan (startup / shutdown) ──

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build services on startup, release HTTP clients on shutdown."""
    logger.info(
        "Starting %s v%s [%s]",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )
    store = build_contacts_store(settings)
    providers = build_providers(settings)
    app.state.dispatcher = AlertDispatcher(
        store, providers, timeout_seconds=settings.PROVIDER_TIMEOUT_SECONDS,
    )
    app.state.roles = RoleRegistry(settings.BOOTSTRAP_ADMIN_IDS)

    if not store.durable:
        logger.warning(
            "CONTACTS_BACKEND=%s keeps contacts in memory; dispatches will find "
            "no contacts until a persistent backend (supabase) is configured",
            settings.CONTACTS_BACKEND,
        )
    for entry in providers.describe():
        if not entry["configured"]:
            logger.warning(
                "%s provider (%s) not configured — %s alerts will be counted as failed",
                entry["channel"], entry["provider"], entry["channel"],
            )
    yield
    await providers.close()
    await store.close()
    logger.info("Shutting down %s", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Emergency alert dispatcher. When an emergency call is recorded, "
        "alerts every registered emergency contact of the caller over SMS, "
        "WhatsApp and email, and reports per-channel delivery tallies. "
        "Also hosts audited role grants for the dashboard's admin portal."
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware (last added runs first) ──

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# ── Error handlers ──
register_error_handlers(app)

# ── Register routers ──
app.include_router(alert_router)
app.include_router(roles_router)


# ── Root & health endpoints ──

async def _health_report(request: Request):
    dispatcher = request.app.state.dispatcher
    return await run_health_check(dispatcher.contacts_store, dispatcher.providers)


@app.get("/", tags=["root"])
async def root(request: Request):
    dispatcher = request.app.state.dispatcher
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "contacts_backend": dispatcher.contacts_store.name,
        "channels": [c["channel"] for c in dispatcher.providers.describe()],
        "endpoints": ["/api/v1/alerts/dispatch", "/api/v1/roles/grant"],
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check(request: Request):
    """Deep health probe — contacts store and channel providers."""
    return (await _health_report(request)).to_dict()


@app.get("/health/live", tags=["health"])
async def liveness():
    """Kubernetes liveness probe — is the process alive?"""
    return {"status": "alive"}


@app.get("/health/ready", tags=["health"])
async def readiness(request: Request):
    """Readiness: degraded still serves (failed channels are counted), unhealthy does not."""
    report = await _health_report(request)
    if report.status == HealthStatus.UNHEALTHY:
        return JSONResponse(status_code=503, content=report.to_dict())
    return report.to_dict()
