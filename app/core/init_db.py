import asyncio
import logging
import os

from sqlalchemy import inspect
from app.core.database import Base, db_manager, engine
from app.core.exceptions import ConfigurationError, UnavailableError

# Регистрация всех моделей в Base.metadata
import app.staff.models  # noqa: F401
import app.students.models  # noqa: F401

logger = logging.getLogger(__name__)


async def verify_database_setup(bind=None) -> bool:
    """Verify that every mapped table exists"""
    async with (bind or engine).connect() as conn:
        existing = set(
            await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        )

    missing = sorted(set(Base.metadata.tables) - existing)
    if missing:
        raise UnavailableError(
            "Database schema is incomplete", details={"missing_tables": missing}
        )

    logger.info(f"✅ Database verification passed: {len(existing)} tables found")
    return True


async def init_database(bind=None):
    """Initialize database tables"""
    logger.info("Starting database initialization...")

    await db_manager.create_tables(bind)
    logger.info("✅ Database tables created/verified")

    await verify_database_setup(bind)
    logger.info("🎉 Database initialization completed successfully")


async def reset_database():
    """Reset database (for development/testing only)"""
    environment = os.getenv("ENVIRONMENT", "production").lower()
    if environment not in ["development", "dev", "test"]:
        raise ConfigurationError(
            "ENVIRONMENT",
            "Database reset is only allowed in development or test environments",
        )

    logger.warning("🚨 RESETTING DATABASE - ALL DATA WILL BE LOST!")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("✅ All tables dropped")

    await init_database()
    logger.info("✅ Database reset completed")


if __name__ == "__main__":
    import sys

    async def main():
        command = sys.argv[1] if len(sys.argv) > 1 else "init"

        if command == "init":
            await init_database()
        elif command == "verify":
            await verify_database_setup()
        elif command == "reset":
            await reset_database()
        else:
            print(f"Unknown command: {command}")
            print("Available commands: init, verify, reset")
            sys.exit(1)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Database initialization cancelled by user")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        sys.exit(1)
