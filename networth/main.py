"""FastAPI main application."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from networth.api.v1 import snapshots
from networth.config import settings
from networth.core.database import close_db, init_db
from networth.core.logging_config import setup_logging
from networth.core.metrics import create_metrics_app, setup_metrics
from networth.middleware.error_handler import ErrorHandlerMiddleware, register_exception_handlers

logger = logging.getLogger(__name__)

# Sentry is optional: only initialised when the SDK is installed and a DSN is set
try:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    SENTRY_AVAILABLE = True
except ImportError:
    SENTRY_AVAILABLE = False

if SENTRY_AVAILABLE and settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1 if not settings.DEBUG else 1.0,
        send_default_pii=False,
        environment=settings.ENVIRONMENT,
        release=f"{settings.APP_NAME}@{settings.APP_VERSION}",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    logger.info("Starting %s %s", settings.APP_NAME, settings.APP_VERSION)

    await init_db()

    # Prometheus metrics on a separate admin port (protected by basic auth)
    if settings.METRICS_ENABLED:
        import uvicorn

        metrics_server = uvicorn.Server(
            uvicorn.Config(
                create_metrics_app(),
                host="0.0.0.0",  # nosec B104 - admin port, basic auth
                port=settings.METRICS_ADMIN_PORT,
                log_level="warning",
            )
        )
        asyncio.create_task(metrics_server.serve())
        logger.info("Metrics admin server started on port %s", settings.METRICS_ADMIN_PORT)

    yield

    logger.info("Shutting down %s", settings.APP_NAME)
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
)

if settings.METRICS_ENABLED:
    setup_metrics(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(ErrorHandlerMiddleware)
register_exception_handlers(app)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


app.include_router(snapshots.router, prefix="/api/v1/snapshots", tags=["Snapshots"])
