"""
Query service for the ORM lab.

Each function demonstrates one data-access behavior. Callers own the transaction scope
(see `UnitOfWork`); these functions only take a `Session` and never commit.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session, contains_eager, joinedload

from services.lab.app.models import Order, User
from services.lab.app.observability import count_statements
from services.lab.app.schemas import UserOrderCount


@dataclass(frozen=True)
class JoinFetchSummary:
    users: int
    orders: int
    product_links: int
    statements: int


@dataclass(frozen=True)
class JoinStrategyResult:
    strategy: str
    users: int
    orders: int
    statements: int


def get_order(session: Session, order_id: int) -> Order:
    # scalar_one: a missing order raises NoResultFound and propagates to the caller.
    return session.execute(select(Order).where(Order.id == order_id)).scalar_one()


def load_orders_with_users(session: Session) -> list[Order]:
    """
    Full scan of orders, then resolve every `Order.user`.

    `Order.user` is lazy, so each reference costs one SELECT the first time a given user
    is seen: 1 query for the orders + 1 per distinct user (the classic N+1).
    """
    orders = list(session.scalars(select(Order).order_by(Order.id)).all())
    for order in orders:
        _ = order.user.name
    return orders


def mark_order_status(session: Session, order_id: int, status: str) -> Order:
    """
    Assign a new status and return. There is no add/merge call: the session tracks the
    loaded instance and flushes the change when the surrounding unit of work commits.
    """
    order = get_order(session, order_id)
    order.status = status
    return order


def count_order_products(order: Order) -> int:
    # Raises DetachedInstanceError when `order` outlived its session and products were never loaded.
    return len(order.products)


def load_users_with_orders_and_products(session: Session) -> list[User]:
    """
    One round trip: users JOIN orders JOIN order_product JOIN products, with both
    collections populated from the joined rows.

    The join yields one row per product link, repeating each user and order; `unique()`
    collapses them back into distinct entities.
    """
    stmt = (
        select(User)
        .join(User.orders)
        .join(Order.products)
        .options(contains_eager(User.orders).contains_eager(Order.products))
        .order_by(User.id)
    )
    return list(session.scalars(stmt).unique().all())


def summarize_join_fetch(session: Session) -> JoinFetchSummary:
    with count_statements() as tally:
        users = load_users_with_orders_and_products(session)
    orders = sum(len(u.orders) for u in users)
    product_links = sum(len(o.products) for u in users for o in u.orders)
    return JoinFetchSummary(users=len(users), orders=orders, product_links=product_links, statements=tally.count)


def users_joined_without_fetch(session: Session, limit: int) -> list[User]:
    # The join only filters (users having orders); the orders collection stays lazy.
    stmt = select(User).join(User.orders).distinct().order_by(User.id).limit(limit)
    return list(session.scalars(stmt).all())


def users_joined_with_fetch(session: Session, limit: int) -> list[User]:
    # Joined eager loading with LIMIT: SQLAlchemy limits a users subquery, so collections stay complete.
    stmt = (
        select(User)
        .where(User.orders.any())
        .options(joinedload(User.orders))
        .order_by(User.id)
        .limit(limit)
    )
    return list(session.scalars(stmt).unique().all())


JOIN_STRATEGIES = {"join": users_joined_without_fetch, "join_fetch": users_joined_with_fetch}


def measure_join_strategy(session: Session, strategy: str, limit: int) -> JoinStrategyResult:
    # Each run starts from an empty identity map; collections loaded by an earlier run must not be reused.
    session.expunge_all()
    with count_statements() as tally:
        users = JOIN_STRATEGIES[strategy](session, limit)
        orders = sum(len(u.orders) for u in users)
    return JoinStrategyResult(strategy=strategy, users=len(users), orders=orders, statements=tally.count)


def compare_join_strategies(session: Session, limit: int) -> list[JoinStrategyResult]:
    return [measure_join_strategy(session, strategy, limit) for strategy in JOIN_STRATEGIES]


def top_users_by_order_count(session: Session, limit: int) -> list[UserOrderCount]:
    """
    Projection: select only the name and an aggregate, so no User/Order entities are
    materialized.
    """
    order_count = func.count(Order.id).label("order_count")
    stmt = (
        select(User.name, order_count)
        .outerjoin(User.orders)
        .group_by(User.id, User.name)
        .order_by(order_count.desc(), User.id)
        .limit(limit)
    )
    return [UserOrderCount(user_name=r.name, order_count=r.order_count) for r in session.execute(stmt)]
