from logging.config import fileConfig
from typing import Any

from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import make_url

from alembic import context  # type: ignore[attr-defined]
from booking_engine.config import DATABASE_URL
from booking_engine.models.base import Base
from booking_engine.models.bookings import Booking, Guest  # noqa: F401
from booking_engine.models.calendars import (  # noqa: F401
    ExternalCalendar,
    ExternalReservation,
    SyncRun,
)
from booking_engine.models.holds import Hold  # noqa: F401
from booking_engine.models.pricing import BlackoutDate, Coupon, PricingRule  # noqa: F401
from booking_engine.models.properties import Property  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Every booking engine table, for autogenerate
target_metadata = Base.metadata
config.set_main_option("sqlalchemy.url", DATABASE_URL)


def migration_options(dialect_name: str) -> dict[str, Any]:
    """
    Context options shared by offline and online runs.

    SQLite cannot ALTER most constraints in place, so its migrations use
    batch mode (copy-and-move tables).
    """
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": dialect_name == "sqlite",
    }


def run_migrations_offline() -> None:
    """Emit the migration SQL to stdout without connecting."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **migration_options(make_url(url).get_backend_name()),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, **migration_options(connection.dialect.name))

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
