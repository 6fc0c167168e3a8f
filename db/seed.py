from __future__ import annotations

import argparse
import json
import os
import random
from datetime import UTC, datetime, timedelta
from decimal import ROUND_DOWN, Decimal

import sqlalchemy as sa
from sqlalchemy.orm import Session

from db.settings import SETTINGS
from services.lab.app.models import Order, Product, User, order_product


STATUSES = ("COMPLETED", "PENDING")
CENT = Decimal("0.01")


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _price(rng: random.Random) -> Decimal:
    return Decimal(rng.uniform(10.0, 110.0)).quantize(CENT, rounding=ROUND_DOWN)


def _clear(session: Session) -> None:
    # Restart identities so a fresh seed always numbers entities from 1.
    if session.bind.dialect.name == "postgresql":
        session.execute(sa.text("TRUNCATE TABLE order_product, orders, products, users RESTART IDENTITY CASCADE"))
        return
    for table in (order_product, Order.__table__, Product.__table__, User.__table__):
        session.execute(table.delete())


def seed(
    database_url: str,
    seed_value: int,
    users_n: int = 100,
    products_n: int = 50,
    orders_n: int = 1000,
    *,
    max_products_per_order: int = 5,
    history_days: int = 30,
    now: datetime | None = None,
) -> dict[str, int]:
    rng = random.Random(seed_value)
    now = now or _now()

    engine = sa.create_engine(database_url, future=True)
    try:
        with Session(engine) as session, session.begin():
            _clear(session)

            users = [User(name=f"User {i}", email=f"user{i}@example.com") for i in range(users_n)]
            products = [
                Product(name=f"Product {i}", description=f"Description for product {i}", price=_price(rng))
                for i in range(products_n)
            ]
            session.add_all(users)
            session.add_all(products)

            orders: list[Order] = []
            for _ in range(orders_n):
                order = Order(
                    user=rng.choice(users),
                    order_date=now - timedelta(days=rng.randrange(history_days)),
                    status=rng.choice(STATUSES),
                )
                # Repeated picks collapse: products is a set.
                for _ in range(rng.randint(1, max_products_per_order)):
                    order.products.add(rng.choice(products))
                orders.append(order)
            session.add_all(orders)
            session.flush()

            counts = {
                "users": session.scalar(sa.select(sa.func.count()).select_from(User)),
                "products": session.scalar(sa.select(sa.func.count()).select_from(Product)),
                "orders": session.scalar(sa.select(sa.func.count()).select_from(Order)),
                "order_product": session.scalar(sa.select(sa.func.count()).select_from(order_product)),
            }
    finally:
        engine.dispose()

    # Verify exact sizes
    assert counts["users"] == users_n, counts
    assert counts["products"] == products_n, counts
    assert counts["orders"] == orders_n, counts
    assert orders_n <= counts["order_product"] <= orders_n * max_products_per_order, counts

    return counts


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--database-url", default=os.getenv("DATABASE_URL") or SETTINGS.database_url)
    parser.add_argument("--seed", type=int, default=SETTINGS.seed_value)
    parser.add_argument("--users", type=int, default=100)
    parser.add_argument("--products", type=int, default=50)
    parser.add_argument("--orders", type=int, default=1000)
    parser.add_argument("--max-products-per-order", type=int, default=5)
    parser.add_argument("--history-days", type=int, default=30, help="Order dates fall within this many past days.")
    args = parser.parse_args()
    counts = seed(
        args.database_url,
        args.seed,
        args.users,
        args.products,
        args.orders,
        max_products_per_order=args.max_products_per_order,
        history_days=args.history_days,
    )
    print(json.dumps({"seed": args.seed, "counts": counts}, indent=2, default=str))


if __name__ == "__main__":
    main()
