import logging
import os
import sys
from logging.config import fileConfig

from sqlalchemy import create_engine, pool
from sqlalchemy.engine.url import make_url

from alembic import context

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

# Migrations can run from a checkout where the kiosk package is not installed.
sys.path.append(os.path.join(os.path.abspath(os.path.dirname(os.path.dirname(__file__))), "src"))

from kiosk.database import get_database_url  # noqa: E402
from kiosk.models import Base  # noqa: E402

target_metadata = Base.metadata


def _options(url):
    # SQLite cannot ALTER most constraints in place.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": make_url(url).get_backend_name() == "sqlite",
    }


def run_migrations_offline():
    """Emit SQL for the kiosk schema without a database connection."""
    url = get_database_url()
    context.configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"}, **_options(url))
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    url = get_database_url()
    logger.info("Migrating %s", make_url(url).render_as_string(hide_password=True))
    connectable = create_engine(url, poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, **_options(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
