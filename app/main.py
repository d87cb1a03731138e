from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from slowapi.errors import RateLimitExceeded

from app.core.limits import limiter, rate_limit_handler
from app.core.init_db import init_database
from app.core.error_handlers import setup_exception_handlers
from app.core.database import db_manager
from app.core.middleware import setup_middleware
from app.core.logging_utils import (
    setup_logging,
    get_logger,
    log_business_event,
    error_tracker,
)
from app.core.config import (
    validate_config,
    APP_NAME,
    APP_VERSION,
    CORS_ALLOW_ORIGINS,
    DEBUG,
    LOG_LEVEL,
    LOG_FORMAT,
)

from app.staff.routers import slots as staff_slots
from app.staff.routers import bookings as staff_bookings
from app.staff.routers import exam_forms as staff_exam_forms
from app.staff.routers import exam_requests as staff_exam_requests
from app.students.routers import (
    schedule_router,
    bookings_router,
    progress_router,
    exam_requests_router,
)

# Настройка системы логирования
setup_logging(LOG_LEVEL, LOG_FORMAT)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""

    # Startup
    logger.info(f"Starting {APP_NAME} v{APP_VERSION}")

    try:
        # Валидация конфигурации
        validate_config()
        logger.info("✅ Configuration validated")

        # Проверка соединения с БД
        await db_manager.check_connection()
        logger.info("✅ Database connection established")

        # Инициализация базы данных
        await init_database()
        logger.info("✅ Database initialized")

        # Логируем бизнес-событие
        log_business_event(
            "application_started",
            "system",
            0,
            {
                "version": APP_VERSION,
                "environment": "development" if DEBUG else "production",
            },
        )

        logger.info("🚀 Application startup completed")

    except Exception as e:
        logger.error(f"❌ Application startup failed: {str(e)}")
        # Отслеживаем критическую ошибку
        error_tracker.track_error(
            "STARTUP_ERROR",
            str(e),
            {"component": "application_startup", "version": APP_VERSION},
        )
        raise

    yield

    # Shutdown
    logger.info("🛑 Shutting down application...")
    await db_manager.close_connections()
    logger.info("👋 Application shutdown completed")


app = FastAPI(
    title=APP_NAME,
    description="Lesson scheduling, booking and exam requests for a driving school",
    version=APP_VERSION,
    lifespan=lifespan,
    debug=DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)

setup_middleware(
    app,
    {
        "slow_request_threshold": 5.0,
        "exclude_paths": [
            "/health",
            "/docs",
            "/openapi.json",
            "/redoc",
            "/favicon.ico",
        ],
    },
)

# Add rate limiter to app state
app.state.limiter = limiter

# Add rate limit exception handler
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)


@app.get("/health", tags=["System"])
async def health_check():
    """Liveness probe with error statistics"""
    return {
        "status": "ok",
        "version": APP_VERSION,
        "errors": error_tracker.get_stats(),
    }


# Include routers with API version prefix
app.include_router(staff_slots.router, prefix="/api/v1")
app.include_router(staff_bookings.router, prefix="/api/v1")
app.include_router(staff_exam_forms.router, prefix="/api/v1")
app.include_router(staff_exam_requests.router, prefix="/api/v1")
app.include_router(schedule_router, prefix="/api/v1")
app.include_router(bookings_router, prefix="/api/v1")
app.include_router(progress_router, prefix="/api/v1")
app.include_router(exam_requests_router, prefix="/api/v1")
