import asyncio
import logging
from functools import wraps
from typing import Callable, TypeVar, Any, AsyncGenerator, Dict
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import text
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    SQLAlchemyError,
    OperationalError,
    InterfaceError,
    DisconnectionError,
    TimeoutError,
)
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .config import (
    DATABASE_URL,
    DB_RETRY_ATTEMPTS,
    DB_RETRY_DELAY,
    DB_RETRY_BACKOFF_FACTOR,
    TRANSACTION_MAX_ATTEMPTS,
    TRANSACTION_RETRY_DELAY,
    TRANSACTION_RETRY_MAX_DELAY,
)
from .exceptions import BaseAppException, ContentionError, UnavailableError

logger = logging.getLogger(__name__)

# SQLSTATE: serialization_failure, deadlock_detected
CONTENTION_SQLSTATES = {"40001", "40P01"}


def _engine_options(url: str) -> Dict[str, Any]:
    """Параметры engine в зависимости от драйвера"""
    if url.startswith("sqlite"):
        # busy timeout: писатели SQLite ждут освобождения блокировки
        return {"connect_args": {"timeout": 30}}
    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 3600,  # Переподключение каждый час
        "pool_pre_ping": True,  # Проверка соединения перед использованием
    }


def create_engine_for(url: str):
    return create_async_engine(url, echo=False, **_engine_options(url))


def create_session_factory(bind) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,  # Отключаем автофлаш для лучшего контроля
    )


engine = create_engine_for(DATABASE_URL)
async_session = create_session_factory(engine)

Base = declarative_base()

# Типы для retry decorator
F = TypeVar("F", bound=Callable[..., Any])

RETRYABLE_CONNECTION_ERRORS = (
    OperationalError,
    InterfaceError,
    DisconnectionError,
    TimeoutError,
    ConnectionError,
    OSError,
)


def is_contention_error(exc: BaseException) -> bool:
    """Конфликт параллельных писателей, который лечится повтором транзакции"""
    if not isinstance(exc, DBAPIError):
        return False

    orig = exc.orig
    cause = getattr(orig, "__cause__", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(cause, "sqlstate", None)
    if sqlstate in CONTENTION_SQLSTATES:
        return True

    # SQLite сообщает о блокировке только текстом
    return "database is locked" in str(orig).lower()


def is_unavailable_error(exc: BaseException) -> bool:
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, RETRYABLE_CONNECTION_ERRORS) and not is_contention_error(exc)


def is_unique_violation(exc: IntegrityError, table, index_name: str) -> bool:
    """IntegrityError вызван именно этим уникальным индексом таблицы"""
    orig = exc.orig
    cause = getattr(orig, "__cause__", None)
    constraint = getattr(orig, "constraint_name", None) or getattr(
        cause, "constraint_name", None
    )
    if constraint:
        return constraint == index_name

    message = str(orig)
    if index_name in message:
        return True

    # SQLite называет столбцы, а не индекс: "UNIQUE constraint failed: t.a, t.b"
    index = next((i for i in table.indexes if i.name == index_name), None)
    if index is None or not message.startswith("UNIQUE constraint failed"):
        return False
    columns = ", ".join(f"{table.name}.{column.name}" for column in index.columns)
    return message.endswith(columns)


def db_retry(
    max_attempts: int = None,
    delay: float = None,
    backoff_factor: float = None,
    exceptions: tuple = None,
) -> Callable[[F], F]:
    """
    Decorator для повторных попыток операций с базой данных

    Args:
        max_attempts: Максимальное количество попыток (по умолчанию из config)
        delay: Начальная задержка между попытками (по умолчанию из config)
        backoff_factor: Множитель для увеличения задержки
        exceptions: Кортеж исключений для повтора
    """
    if max_attempts is None:
        max_attempts = DB_RETRY_ATTEMPTS

    if delay is None:
        delay = DB_RETRY_DELAY

    if backoff_factor is None:
        backoff_factor = DB_RETRY_BACKOFF_FACTOR

    if exceptions is None:
        exceptions = RETRYABLE_CONNECTION_ERRORS

    def decorator(func: F) -> F:
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            current_delay = delay
            last_exception = None

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)

                except exceptions as e:
                    last_exception = e

                    if attempt == max_attempts - 1:
                        # Последняя попытка - выбрасываем исключение
                        break

                    logger.warning(
                        f"Database operation failed (attempt {attempt + 1}/{max_attempts}): {str(e)}",
                        extra={
                            "function": func.__name__,
                            "attempt": attempt + 1,
                            "max_attempts": max_attempts,
                            "exception_type": type(e).__name__,
                        },
                    )

                    await asyncio.sleep(current_delay)
                    current_delay *= backoff_factor

            logger.error(
                f"Database operation failed after {max_attempts} attempts: {str(last_exception)}",
                extra={
                    "function": func.__name__,
                    "max_attempts": max_attempts,
                    "final_exception": str(last_exception),
                },
            )
            raise UnavailableError(
                f"Database unavailable after {max_attempts} attempts",
                details={"operation": func.__name__},
            ) from last_exception

        return async_wrapper

    return decorator


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency для получения сессии базы данных
    """
    session = async_session()
    try:
        yield session
    except Exception as e:
        await session.rollback()
        logger.error(f"Session error: {str(e)}")
        raise
    finally:
        await session.close()


class DatabaseManager:
    """Менеджер для управления операциями с базой данных"""

    @staticmethod
    @db_retry()
    async def create_tables(bind=None):
        """Создание всех таблиц в базе данных"""
        try:
            async with (bind or engine).begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created successfully")
        except Exception as e:
            logger.error(f"Failed to create database tables: {str(e)}")
            raise

    @staticmethod
    @db_retry()
    async def check_connection():
        """Проверка соединения с базой данных"""
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection check successful")
        return True

    @staticmethod
    async def close_connections():
        """Закрытие всех соединений с базой данных"""
        try:
            await engine.dispose()
            logger.info("Database connections closed successfully")
        except Exception as e:
            logger.error(f"Error closing database connections: {str(e)}")


db_manager = DatabaseManager()


class TransactionManager:
    """
    Менеджер транзакций: одна операция - одна транзакция.

    Операция получает сессию, читает и пишет агрегат; commit выполняется
    здесь же. Конфликты параллельных писателей (serialization failure,
    deadlock, SQLite busy) повторяются целиком с экспоненциальной задержкой,
    после исчерпания попыток выбрасывается ContentionError. Потеря
    соединения превращается в UnavailableError.
    """

    def __init__(self, session: AsyncSession, max_attempts: int = None):
        self.session = session
        self.max_attempts = max_attempts or TRANSACTION_MAX_ATTEMPTS

    async def _run_once(self, operation: Callable, *args, **kwargs):
        # Операция выполняется в SAVEPOINT: отказ по бизнес-правилу откатывает
        # только её изменения, объекты прежних команд в сессии остаются загруженными
        try:
            async with self.session.begin_nested():
                result = await operation(self.session, *args, **kwargs)
        except BaseAppException:
            await self.session.commit()
            raise
        except BaseException:
            await self.session.rollback()
            raise
        await self.session.commit()
        return result

    @staticmethod
    def _log_retry(retry_state: RetryCallState):
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Transaction conflict (attempt {retry_state.attempt_number}), retrying",
            extra={
                "attempt": retry_state.attempt_number,
                "exception_type": type(exc).__name__ if exc else None,
            },
        )

    async def execute(self, operation: Callable, *args, **kwargs):
        """
        Выполнить операцию в транзакции с повтором при конфликтах
        """
        operation_name = getattr(operation, "__name__", "transaction")
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(is_contention_error),
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(
                    multiplier=TRANSACTION_RETRY_DELAY, max=TRANSACTION_RETRY_MAX_DELAY
                ),
                before_sleep=self._log_retry,
            ):
                with attempt:
                    return await self._run_once(operation, *args, **kwargs)
        except RetryError as e:
            logger.error(
                f"Transaction {operation_name} gave up after {self.max_attempts} attempts",
                extra={"operation": operation_name, "max_attempts": self.max_attempts},
            )
            raise ContentionError(operation_name, self.max_attempts) from e
        except SQLAlchemyError as e:
            if is_unavailable_error(e):
                logger.error(
                    f"Storage unavailable in {operation_name}: {str(e)}",
                    extra={"operation": operation_name, "exception_type": type(e).__name__},
                )
                raise UnavailableError(details={"operation": operation_name}) from e
            raise


async def run_in_transaction(
    session: AsyncSession, operation: Callable, *args, **kwargs
):
    """
    Хелпер для выполнения операции в транзакции с retry
    """
    transaction_manager = TransactionManager(session)
    return await transaction_manager.execute(operation, *args, **kwargs)


# Декораторы для CRUD операций
def db_operation(func: F) -> F:
    """
    Декоратор для CRUD операций с логированием
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        operation_name = func.__name__

        try:
            logger.debug(f"Starting database operation: {operation_name}")
            result = await func(*args, **kwargs)
            logger.debug(f"Database operation completed: {operation_name}")
            return result

        except SQLAlchemyError as e:
            logger.error(
                f"SQLAlchemy error in {operation_name}: {str(e)}",
                extra={"operation": operation_name, "exception_type": type(e).__name__},
            )
            raise

    return wrapper
