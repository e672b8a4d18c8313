"""
Database connection/session configuration for FastAPI app.
Uses SQLAlchemy with PostgreSQL; DATABASE_URL overrides the Postgres settings.
"""

import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.engine.url import URL, make_url

from dotenv import load_dotenv

from .live import ChangeFeed

load_dotenv()

# PUBLIC_INTERFACE
def get_postgres_url():
    """
    Constructs PostgreSQL connection string from environment variables.
    Requires:
        - POSTGRES_USER
        - POSTGRES_PASSWORD
        - POSTGRES_DB
        - POSTGRES_HOST
        - POSTGRES_PORT
    """
    return URL.create(
        drivername="postgresql+psycopg2",
        username=os.getenv("POSTGRES_USER"),
        password=os.getenv("POSTGRES_PASSWORD"),
        host=os.getenv("POSTGRES_HOST", "localhost"),
        port=int(os.getenv("POSTGRES_PORT", 5432)),
        database=os.getenv("POSTGRES_DB"),
    ).render_as_string(hide_password=False)


# PUBLIC_INTERFACE
def get_database_url():
    """
    Returns DATABASE_URL when set, else the assembled PostgreSQL URL.
    """
    return os.getenv("DATABASE_URL") or get_postgres_url()


def _engine_options(url):
    if make_url(url).get_backend_name() == "sqlite":
        # Sync endpoints run in a threadpool.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 3600}


SQLALCHEMY_DATABASE_URL = get_database_url()

engine = create_engine(SQLALCHEMY_DATABASE_URL, **_engine_options(SQLALCHEMY_DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

change_feed = ChangeFeed()
change_feed.attach(SessionLocal)

# PUBLIC_INTERFACE
def get_db():
    """
    Yields a new database session.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
