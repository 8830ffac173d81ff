"""
Findly Backend — Main Application
Tool directory API: subscription-quota listings, paid advertisements and
the scheduled sweeps that keep both consistent.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import engine, Base
from app.api.routes import admin, advertise, billing, cron, selection, tools

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Stripe mode: {settings.STRIPE_MODE.upper()}")
    if not settings.CRON_SECRET:
        logger.warning("CRON_SECRET is not set; cron endpoints will reject every call")

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")


app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Tool directory API. Subscription plans decide how many tools are "
        "featured; paid advertisements feature tools for a fixed period."
    ),
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# ── CORS ─────────────────────────────────────────────────────────────────────
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routes ───────────────────────────────────────────────────────────────────
app.include_router(tools.router, prefix="/api/tools", tags=["Tools"])
app.include_router(selection.router, prefix="/api/selection", tags=["Tool Selection"])
app.include_router(advertise.router, prefix="/api/advertise", tags=["Advertise"])
app.include_router(billing.router, prefix="/api/billing", tags=["Billing"])
app.include_router(cron.router, prefix="/api/cron", tags=["Cron"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])


# ── Health Check ─────────────────────────────────────────────────────────────
@app.get("/api/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "stripe_mode": settings.STRIPE_MODE,
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
    }
