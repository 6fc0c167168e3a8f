from __future__ import annotations

import os
import sys
import uuid
from collections.abc import Iterator
from pathlib import Path

import pytest
import sqlalchemy as sa
from alembic import command
from alembic.config import Config
from docker.errors import DockerException
from testcontainers.postgres import PostgresContainer


REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_INI = REPO_ROOT / "db" / "migrations" / "alembic.ini"

# Ensure the repo root is importable (so `import services.*` and `import db.*` work in tests).
sys.path.insert(0, str(REPO_ROOT))

# The app must not reseed on startup in tests; the fixtures below seed explicitly.
os.environ.setdefault("SEED_ON_STARTUP", "false")

SEED_VALUE = 42


def migrate() -> None:
    # env.py reads the target from DATABASE_URL.
    command.upgrade(Config(str(ALEMBIC_INI)), "head")


def _psycopg_url(url: str) -> str:
    # Normalize testcontainers URL (may be postgresql:// or postgresql+psycopg2://).
    base = url.replace("postgresql+psycopg2://", "postgresql://")
    return base.replace("postgresql://", "postgresql+psycopg://")


def _create_database(server_url: str) -> str:
    name = f"lab_{uuid.uuid4().hex[:12]}"
    engine = sa.create_engine(server_url, isolation_level="AUTOCOMMIT")
    try:
        with engine.connect() as conn:
            conn.execute(sa.text(f'CREATE DATABASE "{name}"'))
    finally:
        engine.dispose()
    return sa.make_url(server_url).set(database=name).render_as_string(hide_password=False)


@pytest.fixture(scope="session")
def postgres_url() -> Iterator[str | None]:
    """URL of a throwaway PostgreSQL server, or None when no Docker daemon is reachable."""
    try:
        pg = PostgresContainer("postgres:16")
        pg.start()
    except DockerException:
        # Without Docker the suite falls back to SQLite files.
        yield None
        return
    try:
        yield _psycopg_url(pg.get_connection_url())
    finally:
        pg.stop()


@pytest.fixture(scope="session")
def migrated_seeded_db(postgres_url: str | None, tmp_path_factory: pytest.TempPathFactory) -> str:
    database_url = postgres_url or f"sqlite:///{tmp_path_factory.mktemp('lab') / 'lab.db'}"
    os.environ["DATABASE_URL"] = database_url
    migrate()

    from db.seed import seed

    seed(database_url=database_url, seed_value=SEED_VALUE)
    # DATABASE_URL stays pointed at this db: app modules bind their engine to it on first import.
    return database_url


@pytest.fixture()
def migrated_empty_db(postgres_url: str | None, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    # A fresh database per test, so reseeding never touches the shared seeded one.
    database_url = _create_database(postgres_url) if postgres_url else f"sqlite:///{tmp_path / 'empty.db'}"
    monkeypatch.setenv("DATABASE_URL", database_url)
    migrate()
    return database_url


@pytest.fixture()
def session_factory(migrated_seeded_db: str):
    from services.lab.app.db import SESSIONMAKER

    return SESSIONMAKER
