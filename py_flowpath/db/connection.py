"""Database connection utilities."""

from contextlib import contextmanager
from typing import Optional

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import settings
from .models import Base

logger = structlog.get_logger()


class Database:
    """Database connection manager."""

    def __init__(self):
        self.engine = None
        self.SessionLocal = None

    def initialize(self, url: Optional[str] = None):
        """Initialize database connection."""
        url = url or settings.database_url
        logger.info("Initializing database connection", host=settings.db_host, name=settings.db_name)

        self.engine = create_engine(
            url,
            poolclass=StaticPool,
            echo=False,  # Set to True for SQL debugging
        )

        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

        self.create_tables()

        logger.info("Database connection initialized")

    def create_tables(self):
        """Create all tables."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
                conn.commit()

            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables created")

        except Exception as e:
            logger.error("Failed to create tables", error=str(e))
            raise

    @contextmanager
    def get_session(self):
        """Get database session with automatic cleanup."""
        if not self.SessionLocal:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# Global database instance
db = Database()
