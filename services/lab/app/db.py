from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from services.lab.app import observability
from services.lab.app.settings import SETTINGS


def build_engine() -> Engine:
    engine = create_engine(SETTINGS.database_url, pool_pre_ping=True, echo=SETTINGS.sql_echo)
    observability.instrument_statement_counter(engine)
    return engine


ENGINE = build_engine()
# Loaded attributes must stay readable after commit so responses can be built from them.
SESSIONMAKER = sessionmaker(ENGINE, expire_on_commit=False, class_=Session)


def get_session() -> Iterator[Session]:
    with SESSIONMAKER() as session:
        yield session
