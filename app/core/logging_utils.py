import logging
import time
from typing import Any, Dict, Optional
import json

logger = logging.getLogger(__name__)

# Стандартные атрибуты LogRecord, которые не попадают в JSON как extra
_RESERVED_RECORD_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "getMessage",
}


def setup_logging(log_level: str = "INFO", log_format: str = "text"):
    """
    Настройка системы логирования

    Args:
        log_level: Уровень логирования (DEBUG, INFO, WARNING, ERROR)
        log_format: Формат логов (text, json)
    """

    if log_format.lower() == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    # Удаляем существующие handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Настраиваем уровни для специфичных логгеров
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    logger.info(f"Logging configured: level={log_level}, format={log_format}")


class JsonFormatter(logging.Formatter):
    """JSON форматтер для структурированного логирования"""

    def format(self, record):
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Добавляем дополнительные поля из extra
        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_ATTRS:
                continue
            try:
                json.dumps(value)
                log_entry[key] = value
            except (TypeError, ValueError):
                log_entry[key] = str(value)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False)


class ErrorTracker:
    """Класс для отслеживания ошибок и их статистики"""

    def __init__(self, max_history: int = 100):
        self.error_counts = {}
        self.last_errors = []
        self.max_history = max_history

    def track_error(
        self, error_type: str, error_message: str, context: Dict[str, Any] = None
    ):
        """Отследить ошибку"""
        self.error_counts[error_type] = self.error_counts.get(error_type, 0) + 1

        self.last_errors.append(
            {
                "timestamp": time.time(),
                "type": error_type,
                "message": error_message,
                "context": context or {},
            }
        )

        # Ограничиваем размер истории
        if len(self.last_errors) > self.max_history:
            self.last_errors = self.last_errors[-self.max_history :]

        logger.warning(
            f"Error tracked: {error_type}",
            extra={
                "error_type": error_type,
                "error_message": error_message,
                "total_count": self.error_counts[error_type],
                "context": context,
            },
        )

    def get_stats(self) -> Dict[str, Any]:
        """Получить статистику ошибок"""
        return {
            "error_counts": self.error_counts.copy(),
            "total_errors": sum(self.error_counts.values()),
            "unique_error_types": len(self.error_counts),
            "last_errors": self.last_errors[-10:],
        }

    def reset_stats(self):
        self.error_counts.clear()
        self.last_errors.clear()
        logger.info("Error tracking stats reset")


# Глобальный трекер ошибок
error_tracker = ErrorTracker()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_business_event(
    event: str,
    entity_type: str,
    entity_id: Optional[int],
    details: Dict[str, Any] = None,
    actor_id: Optional[int] = None,
):
    """
    Логировать бизнес-событие после успешного commit

    Args:
        event: Название события (booking_created, exam_request_reviewed, ...)
        entity_type: Тип сущности (slot, booking, exam_form, exam_request)
        entity_id: ID сущности
        details: Дополнительные детали
        actor_id: Кто выполнил команду
    """
    logger.info(
        f"Business event: {event}",
        extra={
            "event": event,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "actor_id": actor_id,
            "details": details or {},
            "category": "business_event",
        },
    )
