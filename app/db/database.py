"""
Database connection and session management.
Provides SQLAlchemy engine, session factory, and base class.
"""
import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    {
        "name": "Games",
        "subcategories": ["GTA V", "FIFA 23", "Call of Duty", "Minecraft", "League of Legends"]
    },
    {
        "name": "Movies",
        "subcategories": ["The Batman", "Inception", "Interstellar", "Top Gun: Maverick"]
    },
    {
        "name": "Series",
        "subcategories": ["Stranger Things", "The Mandalorian", "Breaking Bad"]
    },
]


def build_engine(database_url: str):
    """
    Create a SQLAlchemy engine for the given URL.

    SQLite is used for local development and tests; its connections are
    shared with worker threads, so same-thread checking is disabled.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=settings.log_level == "DEBUG"
        )
    return create_engine(
        database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        pool_recycle=settings.db_pool_recycle,
        echo=settings.log_level == "DEBUG"
    )


engine = build_engine(settings.database_url)

# Create SessionLocal class for database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create Base class for models
Base = declarative_base()


def init_db(bind=None) -> None:
    """
    Initialize database by creating all tables.
    Should be called once during application setup.
    """
    from db import models  # noqa: F401  register models with Base
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created successfully")


def seed_db(session_factory=None) -> None:
    """
    Seed database with the default video categories.
    Does nothing when categories already exist.
    """
    from db.models import Category

    db = (session_factory or SessionLocal)()
    try:
        existing = db.query(Category).count()
        if existing > 0:
            logger.info(f"Database already seeded ({existing} categories exist)")
            return

        db.add_all([Category(**data) for data in DEFAULT_CATEGORIES])
        db.commit()
        logger.info(f"Database seeded with {len(DEFAULT_CATEGORIES)} categories")

    except Exception as e:
        db.rollback()
        logger.error(f"Error seeding database: {e}")
        raise
    finally:
        db.close()
