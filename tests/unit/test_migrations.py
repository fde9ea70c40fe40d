"""
Unit tests for the schema migration's PostgreSQL-only statements.
"""

from __future__ import annotations

import importlib.util
from pathlib import Path
from types import ModuleType
from unittest.mock import Mock, patch

import pytest

VERSIONS = Path(__file__).resolve().parents[2] / "alembic" / "versions"


def _load_migration() -> ModuleType:
    path = VERSIONS / "3f1c9a7d2b64_create_booking_engine_tables.py"
    spec = importlib.util.spec_from_file_location("create_booking_engine_tables", path)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _executed_sql(dialect: str) -> list[str]:
    migration = _load_migration()
    op = Mock()
    op.get_bind.return_value.dialect.name = dialect
    with patch.object(migration, "op", op):
        migration.upgrade()
    return [" ".join(str(c.args[0]).split()) for c in op.execute.call_args_list]


@pytest.mark.unit
def test_overlap_constraints_are_checked_at_commit() -> None:
    statements = [s for s in _executed_sql("postgresql") if "EXCLUDE USING gist" in s]

    assert len(statements) == 2
    assert any("ex_bookings_confirmed_overlap" in s for s in statements)
    assert any("ex_external_reservations_overlap" in s for s in statements)
    assert all(s.endswith("DEFERRABLE INITIALLY DEFERRED") for s in statements)


@pytest.mark.unit
def test_sqlite_skips_exclusion_constraints() -> None:
    assert _executed_sql("sqlite") == []
