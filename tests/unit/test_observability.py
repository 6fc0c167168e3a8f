from __future__ import annotations

import sqlalchemy as sa


def test_count_statements_tallies_nested_scopes(session_factory) -> None:
    from services.lab.app.observability import count_statements

    with session_factory() as session:
        with count_statements() as outer:
            session.execute(sa.text("SELECT 1"))
            with count_statements() as inner:
                session.execute(sa.text("SELECT 1"))
                session.execute(sa.text("SELECT 1"))
            session.execute(sa.text("SELECT 1"))

    assert inner.count == 2
    assert outer.count == 4


def test_statements_outside_a_scope_are_not_attributed(session_factory) -> None:
    from services.lab.app.observability import count_statements

    with session_factory() as session:
        session.execute(sa.text("SELECT 1"))
        with count_statements() as tally:
            pass
        session.execute(sa.text("SELECT 1"))

    assert tally.count == 0


def test_instrument_statement_counter_is_idempotent(session_factory) -> None:
    from services.lab.app.db import ENGINE
    from services.lab.app.observability import count_statements, instrument_statement_counter

    instrument_statement_counter(ENGINE)
    with session_factory() as session, count_statements() as tally:
        session.execute(sa.text("SELECT 1"))

    assert tally.count == 1
