"""
Database Configuration and Session Management

SQLAlchemy engine and session factory for the node registry. The URL comes
from ``DATABASE_URL`` (SQLite file under backend/data by default).
"""

import os
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Ensure data directory exists
DATA_DIR = Path(__file__).parent.parent.parent / "data"
DATA_DIR.mkdir(exist_ok=True)

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite:///{DATA_DIR}/central_unit.db"
)

# Base class for ORM models
Base = declarative_base()


def create_db_engine(url: str, **kwargs) -> Engine:
    """
    Engine for the node database

    SQLite connections are shared across threads (FastAPI runs sync work in
    a threadpool); extra kwargs go straight to ``create_engine``, e.g.
    ``poolclass=StaticPool`` for an in-memory database.
    """
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, echo=False, **kwargs)


def create_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


engine = create_db_engine(DATABASE_URL)
SessionLocal = create_session_factory(engine)


def init_db(bind: Engine = None):
    """
    Create the node tables if they do not exist

    Called on application startup.
    """
    # Import all models to ensure they're registered with Base
    from central_unit.database import models  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(bind=target)

    print(f"[OK] Database initialized at: {target.url}")
