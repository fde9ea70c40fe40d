from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Stable constraint names so Alembic migrations can reference them on any backend
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """
    Base class for all booking engine ORM models.

    The models only declare tables; reads and writes go through SQLAlchemy
    Core statements in booking_engine.db.readers and booking_engine.db.writers.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
