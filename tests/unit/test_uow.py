from __future__ import annotations

import pytest
from sqlalchemy import select


class Boom(Exception):
    pass


def _status(session_factory, order_id: int) -> str:
    from services.lab.app.models import Order

    with session_factory() as session:
        return session.execute(select(Order.status).where(Order.id == order_id)).scalar_one()


def test_context_manager_lifecycle(session_factory) -> None:
    from services.lab.app.uow import UnitOfWork

    uow = UnitOfWork(session_factory)
    assert uow.session is None

    with uow:
        session = uow.session
        assert session is not None
        assert session.is_active

    assert uow.session is None


def test_clean_exit_commits_dirty_instances(session_factory) -> None:
    from services.lab.app.models import Order
    from services.lab.app.uow import UnitOfWork

    with UnitOfWork(session_factory) as uow:
        order = uow.session.get(Order, 3)
        order.status = "UOW_COMMITTED"

    assert _status(session_factory, 3) == "UOW_COMMITTED"


def test_exception_rolls_back_and_propagates(session_factory) -> None:
    from services.lab.app.models import Order
    from services.lab.app.uow import UnitOfWork

    before = _status(session_factory, 4)
    uow = UnitOfWork(session_factory)
    with pytest.raises(Boom):
        with uow:
            order = uow.session.get(Order, 4)
            order.status = "NEVER_PERSISTED"
            uow.flush()
            raise Boom

    assert uow.session is None
    assert _status(session_factory, 4) == before


def test_read_only_unit_discards_changes(session_factory) -> None:
    from services.lab.app.models import Order
    from services.lab.app.uow import UnitOfWork

    before = _status(session_factory, 5)
    with UnitOfWork(session_factory, read_only=True) as uow:
        order = uow.session.get(Order, 5)
        order.status = "DISCARDED"

    assert _status(session_factory, 5) == before


def test_loaded_attributes_survive_close_but_lazy_ones_do_not(session_factory) -> None:
    from sqlalchemy.orm.exc import DetachedInstanceError

    from services.lab.app.models import Order
    from services.lab.app.uow import UnitOfWork

    with UnitOfWork(session_factory, read_only=True) as uow:
        order = uow.session.get(Order, 6)

    assert order.id == 6
    assert order.status
    with pytest.raises(DetachedInstanceError):
        _ = order.products
