import os

# Настройки PostgreSQL
POSTGRES_USER = os.getenv("POSTGRES_USER", "postgres")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
POSTGRES_DB = os.getenv("POSTGRES_DB", "driving_school")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "db")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")

# Полный URL можно передать напрямую (например, sqlite+aiosqlite для тестов)
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
)

# Настройки среды
ENVIRONMENT = os.getenv("ENVIRONMENT", "production").lower()
DEBUG = ENVIRONMENT in ["development", "dev"]

# Настройки retry для базы данных
DB_RETRY_ATTEMPTS = int(os.getenv("DB_RETRY_ATTEMPTS", "3"))
DB_RETRY_DELAY = float(os.getenv("DB_RETRY_DELAY", "1.0"))
DB_RETRY_BACKOFF_FACTOR = float(os.getenv("DB_RETRY_BACKOFF_FACTOR", "2.0"))

# Повторы транзакций при конфликтах записи (serialization failure, deadlock, busy)
TRANSACTION_MAX_ATTEMPTS = int(os.getenv("TRANSACTION_MAX_ATTEMPTS", "5"))
TRANSACTION_RETRY_DELAY = float(os.getenv("TRANSACTION_RETRY_DELAY", "0.05"))
TRANSACTION_RETRY_MAX_DELAY = float(os.getenv("TRANSACTION_RETRY_MAX_DELAY", "1.0"))

# Настройки логирования
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json" if not DEBUG else "text")

# Настройки приложения
APP_NAME = os.getenv("APP_NAME", "Driving School Scheduling API")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")

# Бизнес-правила записи и допуска к экзамену
BOOKING_LEAD_TIME_HOURS = float(os.getenv("BOOKING_LEAD_TIME_HOURS", "2"))
EXAM_MIN_HOURS = float(os.getenv("EXAM_MIN_HOURS", "20"))
EXAM_MIN_RATING = float(os.getenv("EXAM_MIN_RATING", "3.5"))
PROGRESS_CACHE_TTL_SECONDS = float(os.getenv("PROGRESS_CACHE_TTL_SECONDS", "300"))

# Rate limiting
RATE_LIMIT_DEFAULT = os.getenv("RATE_LIMIT_DEFAULT", "120/minute")
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

# CORS: список origin через запятую
CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]


# Валидация критичных настроек
def validate_config():
    """Валидация конфигурации при запуске"""
    errors = []

    if not DATABASE_URL:
        errors.append("DATABASE_URL is required")

    if DB_RETRY_ATTEMPTS < 1:
        errors.append("DB_RETRY_ATTEMPTS must be >= 1")

    if DB_RETRY_DELAY < 0:
        errors.append("DB_RETRY_DELAY must be >= 0")

    if TRANSACTION_MAX_ATTEMPTS < 1:
        errors.append("TRANSACTION_MAX_ATTEMPTS must be >= 1")

    if BOOKING_LEAD_TIME_HOURS < 0:
        errors.append("BOOKING_LEAD_TIME_HOURS must be >= 0")

    if not 0 <= EXAM_MIN_RATING <= 5:
        errors.append("EXAM_MIN_RATING must be between 0 and 5")

    if EXAM_MIN_HOURS < 0:
        errors.append("EXAM_MIN_HOURS must be >= 0")

    if errors:
        raise ValueError(f"Configuration errors: {'; '.join(errors)}")


# Автоматическая валидация при импорте (опционально)
if os.getenv("VALIDATE_CONFIG_ON_IMPORT", "true").lower() == "true":
    try:
        validate_config()
    except ValueError as e:
        print(f"⚠️  Configuration warning: {e}")
