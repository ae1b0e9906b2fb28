"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for the maintenance hierarchy read by the
selector collaborators.
"""

from pathlib import Path
from typing import Optional

from sqlalchemy import Column, ForeignKey, Integer, String, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker

from .logger import StructuredLogger
from .retry import backoff_delays, retry_call

Base = declarative_base()


class Unit(Base):
    """Company site holding sections of equipments and articles."""

    __tablename__ = "units"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)


class Section(Base):
    __tablename__ = "sections"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    id_unit = Column(Integer, ForeignKey("units.id"), nullable=False, index=True)


class EquipmentFamily(Base):
    __tablename__ = "equipment_families"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)


class EquipmentType(Base):
    __tablename__ = "equipment_types"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    id_equipment_family = Column(Integer, ForeignKey("equipment_families.id"), nullable=False, index=True)


class Equipment(Base):
    __tablename__ = "equipments"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    reference = Column(String(32))
    id_equipment_type = Column(Integer, ForeignKey("equipment_types.id"), nullable=False, index=True)
    id_section = Column(Integer, ForeignKey("sections.id"), index=True)  # not yet installed if null


class WorkOrder(Base):
    __tablename__ = "work_orders"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    id_equipment = Column(Integer, ForeignKey("equipments.id"), nullable=False, index=True)


class Intervention(Base):
    __tablename__ = "interventions"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    id_equipment = Column(Integer, ForeignKey("equipments.id"), nullable=False, index=True)


class ArticleCategory(Base):
    __tablename__ = "article_categories"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)


class ArticleSubcategory(Base):
    __tablename__ = "article_subcategories"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    id_article_category = Column(Integer, ForeignKey("article_categories.id"), nullable=False, index=True)


class Article(Base):
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    reference = Column(String(32))
    id_article_subcategory = Column(Integer, ForeignKey("article_subcategories.id"), nullable=False, index=True)
    id_section = Column(Integer, ForeignKey("sections.id"), index=True)  # stock location, optional


class Nomenclature(Base):
    """Article used as a spare part of an equipment."""

    __tablename__ = "nomenclatures"

    id = Column(Integer, primary_key=True)
    quantity = Column(Integer, nullable=False, default=1)
    id_article = Column(Integer, ForeignKey("articles.id"), nullable=False, index=True)
    id_equipment = Column(Integer, ForeignKey("equipments.id"), nullable=False, index=True)


def get_engine(db_path: Path) -> Engine:
    """
    Create an engine on a SQLite database file.

    Connections may be used from resolver worker threads.
    """
    return create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(db_path)
    Base.metadata.create_all(engine)
    engine.dispose()


def get_session_factory(db_path: Path) -> sessionmaker:
    """Return a session factory bound to the database file."""
    return sessionmaker(bind=get_engine(db_path))


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    Session = get_session_factory(db_path)
    return Session()


def connect_database(
    db_path: Path,
    max_retries: int = 3,
    base_delay: float = 1.0,
    logger: Optional[StructuredLogger] = None,
) -> sessionmaker:
    """
    Open the database, retrying while it is unavailable.

    Args:
        db_path: Path to SQLite database file
        max_retries: Retries after the first failed attempt
        base_delay: Initial delay between attempts in seconds
        logger: Optional logger for retry warnings

    Returns:
        Session factory bound to the database

    Raises:
        RetryError: If the database is still unavailable after all retries
    """
    engine = get_engine(db_path)

    def on_retry(attempt, exception, delay):
        if logger is not None:
            logger.warning(
                "Database connection failed, retrying",
                attempt=attempt,
                max_retries=max_retries,
                delay=delay,
                error=str(exception),
            )

    def ping():
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))

    retry_call(
        ping,
        max_retries=max_retries,
        delays=backoff_delays(base_delay=base_delay),
        exceptions=(OperationalError,),
        on_retry=on_retry,
    )
    if logger is not None:
        logger.info("Database connection success", db_path=str(db_path))
    return sessionmaker(bind=engine)
