import os

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Load .env file (DATABASE_URL lives there)
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is not set")

# Hosted Postgres hands out postgresql:// but SQLAlchemy needs postgresql+psycopg2://
if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+psycopg2://", 1)


def build_engine(url: str):
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, future=True, echo=False, **kwargs)
    return create_engine(
        url,
        future=True,
        echo=False,  # set True if you want to see SQL in terminal
        pool_pre_ping=True,
    )


# SQLAlchemy engine & session factory
engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)

Base = declarative_base()


def init_db() -> None:
    """
    Import models and create tables if they don't exist.
    Alembic is the real migration tool, but this keeps local dev sane.
    """
    from feedpress import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db():
    """
    FastAPI dependency that gives you a DB session and cleans it up after.
    """
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
