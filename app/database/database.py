from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base
import logging

from app import config

logger = logging.getLogger(__name__)

# Database configuration
DATABASE_URL = config.DATABASE_URL
if not DATABASE_URL:
    DATABASE_URL = "sqlite:///./test.db"
    logger.warning("No DATABASE_URL found, using SQLite fallback")


def build_engine(database_url: str):
    """Create an engine with pool settings suited to the target database"""
    if database_url.startswith("postgresql"):
        engine_kwargs = {
            "pool_size": 5,
            "max_overflow": 10,
            "pool_timeout": 30,
            "pool_recycle": 1800,  # Recycle connections every 30 minutes
            "pool_pre_ping": True,  # Validate connections before use
            "echo": config.SQL_ECHO,
            "connect_args": {
                "connect_timeout": 10,
                "application_name": "expense_approval_api",
                "options": f"-c statement_timeout={config.STATEMENT_TIMEOUT_MS}",
            },
        }
        logger.info("Creating PostgreSQL engine")
        return create_engine(database_url, **engine_kwargs)

    # SQLite configuration for development
    logger.info("Using SQLite database")
    return create_engine(
        database_url,
        echo=config.SQL_ECHO,
        connect_args={"check_same_thread": False},
    )


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """Request-scoped session; anything left uncommitted is rolled back on close"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def test_connection() -> bool:
    """Test database connection on startup"""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        logger.info("Database connection test successful")
        return True
    except Exception as e:
        logger.error(f"Database connection test failed: {e}")
        return False
