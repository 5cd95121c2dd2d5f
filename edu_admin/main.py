from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded

from edu_admin.core.limits import limiter, rate_limit_handler
from edu_admin.core.init_db import init_database
from edu_admin.core.error_handlers import setup_exception_handlers
from edu_admin.core.database import db_manager
from edu_admin.core.middleware import setup_middleware
from edu_admin.core.logging_utils import (
    setup_logging,
    get_logger,
    log_business_event,
    error_tracker,
)
from edu_admin.core.config import (
    validate_config,
    APP_NAME,
    APP_VERSION,
    API_PREFIX,
    CORS_ORIGINS,
    DEBUG,
    ENVIRONMENT,
    LOG_LEVEL,
    LOG_FORMAT,
)

from edu_admin.students.routers import students_router, cron_router
from edu_admin.contracts.routers import contracts_router

setup_logging(LOG_LEVEL, LOG_FORMAT)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Конфигурация и схема БД при старте, закрытие пула при остановке"""
    logger.info(f"Starting {APP_NAME} v{APP_VERSION} ({ENVIRONMENT})")

    try:
        validate_config()
        await init_database()
    except Exception as e:
        logger.error(f"❌ Application startup failed: {str(e)}")
        error_tracker.track_error(
            "STARTUP_ERROR", str(e), {"component": "lifespan", "version": APP_VERSION}
        )
        raise

    log_business_event(
        "application_started",
        "system",
        APP_NAME,
        {"version": APP_VERSION, "environment": ENVIRONMENT, "api_prefix": API_PREFIX},
    )

    yield

    logger.info("🛑 Shutting down application...")
    try:
        await db_manager.close_connections()
    except Exception as e:
        logger.error(f"❌ Error during shutdown: {str(e)}")


app = FastAPI(
    title=APP_NAME,
    description="Enrollment lifecycle: approval queue, contracts, freezes and payment tranches",
    version=APP_VERSION,
    lifespan=lifespan,
    debug=DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

setup_exception_handlers(app)

setup_middleware(
    app,
    {
        "slow_request_threshold": 2.0,
        "exclude_paths": ["/health", "/docs", "/openapi.json", "/redoc", "/favicon.ico"],
    },
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

for router in (students_router, contracts_router, cron_router):
    app.include_router(router, prefix=API_PREFIX)


@app.get("/health", tags=["System"])
async def health_check():
    """Состояние сервиса: доступность БД и счетчики ошибок с момента старта"""
    try:
        await db_manager.check_connection()
        database = "ok"
    except Exception as e:
        logger.warning(f"Health check: database unavailable: {e}")
        database = "unavailable"

    stats = error_tracker.get_stats()
    return {
        "status": "ok" if database == "ok" else "degraded",
        "version": APP_VERSION,
        "database": database,
        "errors": {
            "total": stats["total_errors"],
            "by_kind": stats["error_counts"],
        },
    }
