"""
Campus Pulse API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups,
and manages the MongoDB connection lifecycle.

Run locally:
    uvicorn campus_pulse.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from campus_pulse.core.config import settings
from campus_pulse.core.database import close_mongo_connection, connect_to_mongo
from campus_pulse.core.rate_limit import limiter
from campus_pulse.routes.alerts import router as alerts_router
from campus_pulse.routes.geocode import router as geocode_router
from campus_pulse.routes.health import API_VERSION
from campus_pulse.routes.health import router as health_router
from campus_pulse.routes.hotspots import router as hotspots_router

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open MongoDB on startup, close it on shutdown."""
    logger.info("Starting Campus Pulse API (env: %s)", settings.environment)
    await connect_to_mongo()
    yield
    logger.info("Shutting down Campus Pulse API")
    await close_mongo_connection()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Campus Pulse API",
    description=(
        "Campus safety alerts, reverse geocoding and hotspot detection. "
        "AI summaries are best-effort and may arrive after the first response."
    ),
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ─── Middleware ─────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(alerts_router)
app.include_router(geocode_router)
app.include_router(hotspots_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "Campus Pulse API",
        "version": API_VERSION,
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
