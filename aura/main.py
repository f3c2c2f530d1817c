import logging

from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from aura.db.base import get_db
from aura.core.config import settings
from aura.core.logging import setup_logging
from aura.routers import auras as auras_router
from aura.routers import rules as rules_router
from aura.routers import sensors as sensors_router
from aura.routers import evaluation as evaluation_router
from aura.core.errors import (
    AuraPlatformError,
    aura_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)
from aura.services.cache import InvalidationBus
from aura.services.evaluation_worker import EvaluationWorker
from aura.services.providers import LoggingNotificationDispatcher, StaticSenseDataProvider
from aura.services.sensor_catalog import DEFAULT_CATALOG

setup_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Aura Rule Service API",
    description=(
        "**Behavior rule evaluation for Aura companions**\n\n"
        "Stores each Aura's behavior rules, evaluates them against live sense data "
        "with cooldown / frequency throttling, and exposes a cron-driven proactive "
        "evaluation cycle.\n\n"
        "All error responses follow the `{code, message, details}` envelope."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Long-lived service objects ---
app.state.catalog = DEFAULT_CATALOG
app.state.bus = InvalidationBus()
app.state.sense_provider = StaticSenseDataProvider()
app.state.dispatcher = LoggingNotificationDispatcher()
app.state.worker = EvaluationWorker(
    app.state.sense_provider,
    app.state.dispatcher,
    catalog=app.state.catalog,
    bus=app.state.bus,
    rule_cache_ttl=settings.RULE_CACHE_TTL_SECONDS,
    batch_size=settings.EVALUATION_BATCH_SIZE,
    interval_seconds=settings.EVALUATION_INTERVAL_SECONDS,
    default_cooldown=settings.DEFAULT_COOLDOWN_SECONDS,
    frequency_enforcement=settings.FREQUENCY_ENFORCEMENT,
)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Exception handlers (most specific first) ---
app.add_exception_handler(AuraPlatformError, aura_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Routers ---
app.include_router(auras_router.router)
app.include_router(rules_router.router)
app.include_router(sensors_router.router)
app.include_router(evaluation_router.router)


@app.get("/health", tags=["health"], summary="Health check")
def health(db: Session = Depends(get_db)):
    """
    `{"status": "ok", "db": "ok", ...}` plus whether an evaluation cycle is
    in progress. HTTP 503 when the database cannot be reached.
    """
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        return JSONResponse(status_code=503, content={"status": "error", "db": "unreachable"})

    return {
        "status": "ok",
        "db": "ok",
        "env": settings.APP_ENV,
        "evaluation_running": app.state.worker.is_running,
    }
