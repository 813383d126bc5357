from contextlib import asynccontextmanager

import structlog
import structlog.contextvars
from config import settings
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from plugins import init_plugins
from plugins.core.accounts.registry import DEFAULT_REGISTRY, validate_registry
from prometheus_fastapi_instrumentator import Instrumentator
from pymongo.errors import ConnectionFailure
from utils.database_setup import ensure_indexes
from utils.exceptions import ServiceError
from utils.middleware import api_key_middleware, structured_logging_middleware

from bizledger_core.logging_config import setup_structlog
from bizledger_core.tracing import setup_tracing

EXCLUDED_PLUGINS: list[str] = []

setup_structlog(
    json_logs=settings.json_logs,
    log_level=settings.log_level,
    service_name=settings.service_name,
    environment=settings.environment,
)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Validate the collection registry, connect to MongoDB and ensure indexes.
    A malformed registry or an unreachable database aborts startup.
    """
    setup_tracing(service_name=settings.service_name, environment=settings.environment)
    logger.info("Application starting up...", service=settings.service_name)

    validate_registry(DEFAULT_REGISTRY)
    logger.info("Collection registry validated.", collections=len(DEFAULT_REGISTRY))

    instrumentator.expose(app)

    try:
        app.state.mongo_client = AsyncIOMotorClient(str(settings.mongodb_url))
        await app.state.mongo_client.admin.command("ping")
        logger.info("Successfully connected to MongoDB.")

        db = app.state.mongo_client[settings.mongodb_database]
        await ensure_indexes(db, DEFAULT_REGISTRY)
    except ConnectionFailure as e:
        logger.fatal("Failed to connect to MongoDB on startup.", error=str(e))
        raise

    yield

    logger.info("Application shutting down...")
    app.state.mongo_client.close()
    logger.info("MongoDB connection closed.")


app = FastAPI(
    version="1.0.0",
    title="Bizledger API",
    description="Accounting backend services: account data lifecycle administration.",
    lifespan=lifespan,
)

FastAPIInstrumentor.instrument_app(app)

instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/metrics", "/health"],
)
instrumentator.instrument(app, metric_namespace="bizledger", metric_subsystem="backend")


@app.exception_handler(ServiceError)
async def service_exception_handler(request: Request, exc: ServiceError):
    logger.warning(
        "Service error occurred, returning HTTP response",
        detail=exc.detail,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("An unhandled exception occurred", error=str(exc))
    correlation_id = structlog.contextvars.get_contextvars().get(
        "correlation_id", "not-available"
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An internal server error occurred.",
            "error_id": correlation_id,
        },
    )


app.middleware("http")(api_key_middleware)
app.middleware("http")(structured_logging_middleware)

init_plugins(app, excluded_plugins=EXCLUDED_PLUGINS)


@app.get("/health", tags=["Health Check"], include_in_schema=False)
def health_check():
    return {"status": "ok"}
