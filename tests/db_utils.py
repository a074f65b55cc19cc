from __future__ import annotations

import uuid
from collections.abc import Callable

from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url


def _admin_engine(url):
    return create_engine(url.set(database="postgres"), isolation_level="AUTOCOMMIT", future=True)


def create_postgres_test_database(base_url: str) -> tuple[str, Callable[[], None]]:
    """Create a throwaway ledger database next to ``base_url`` and return its URL plus a dropper."""
    url = make_url(base_url)
    db_name = f"stockbox_test_{uuid.uuid4().hex[:12]}"

    engine = _admin_engine(url)
    with engine.connect() as conn:
        conn.execute(text(f'CREATE DATABASE "{db_name}"'))
    engine.dispose()

    def cleanup() -> None:
        drop_engine = _admin_engine(url)
        with drop_engine.connect() as conn:
            conn.execute(
                text("SELECT pg_terminate_backend(pid) FROM pg_stat_activity WHERE datname = :db_name"),
                {"db_name": db_name},
            )
            conn.execute(text(f'DROP DATABASE IF EXISTS "{db_name}"'))
        drop_engine.dispose()

    return url.set(database=db_name).render_as_string(hide_password=False), cleanup
