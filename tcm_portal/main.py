"""
Main FastAPI application for the TCM report portal.
Handles CORS, request logging middleware, lifespan events, error mapping and
router registration.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tcm_portal.config import settings
from tcm_portal.database import close_db, get_session_factory, init_db
from tcm_portal.routers import clients, health, logs, reports
from tcm_portal.services.errors import PortalError
from tcm_portal.services.store import MemoryStore, PortalStore, SqlStore, set_store

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

async def _init_store() -> PortalStore:
    """SQL store when DATABASE_URL is set (tables created, users seeded), else memory."""
    session_factory = get_session_factory()
    if session_factory is None:
        logger.warning("⚠ DATABASE_URL not set: using in-memory store (data is lost on restart)")
        return MemoryStore()

    try:
        await init_db()
        store = SqlStore(session_factory)
        await store.seed()
        logger.info("✓ Database connection OK")
        return store
    except Exception as exc:
        logger.error("✗ Database connection failed: %s", exc)
        raise


def _check_gemini() -> bool:
    configured = bool((settings.GEMINI_API_KEY or "").strip())
    if configured:
        logger.info("✓ Gemini configured (model %s)", settings.GEMINI_MODEL)
    else:
        logger.warning("⚠ GEMINI_API_KEY not set: report generation will fail")
    return configured


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting TCM report portal …")
    logger.info("=" * 60)

    # 1: Store (SQL when configured; raises on failure)
    set_store(await _init_store())

    # 2: Gemini (optional; logs a warning but continues)
    _check_gemini()

    logger.info("=" * 60)
    logger.info("  Portal ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down TCM report portal …")
    await close_db()
    set_store(None)
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TCM Report Portal API",
    description=(
        "Integrative TCM wellness report portal.\n\n"
        "Key endpoints:\n"
        "- `POST /api/reports/diagnose`: scores → AI report\n"
        "- `POST /api/reports/export`: report → paginated PDF\n"
        "- `POST /api/reports/save`: save a report\n"
        "- `GET  /api/clients`: client list\n"
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Page-Count"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip noisy health-check polling from the frontend
    if request.url.path not in ("/api/health/", "/"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    """Map typed portal errors to their HTTP status with a user-facing message."""
    logger.warning(
        "%s on %s %s: %s",
        exc.code,
        request.method,
        request.url.path,
        exc.user_message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.user_message,
            "code": exc.code,
            "path": str(request.url.path),
            "timestamp": _timestamp(),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": _timestamp(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,   prefix="/api/health",  tags=["Health"])
app.include_router(clients.router,  prefix="/api/clients", tags=["Clients"])
app.include_router(logs.router,     prefix="/api/logs",    tags=["Logs"])
app.include_router(reports.router,  prefix="/api/reports", tags=["Reports"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root: returns basic service info."""
    return {
        "name": "TCM Report Portal API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health/",
        "endpoints": {
            "clients": "/api/clients",
            "logs": "/api/logs",
            "reports": "/api/reports",
            "diagnose": "/api/reports/diagnose",
            "export": "/api/reports/export",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tcm_portal.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
