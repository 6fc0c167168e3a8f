from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import sqlalchemy as sa
from fastapi import Depends, FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import DetachedInstanceError

from db.seed import seed as seed_db
from services.lab.app import observability, queries
from services.lab.app.db import ENGINE, SESSIONMAKER, get_session
from services.lab.app.logging import configure_logging, logger
from services.lab.app.schemas import OrderOut, UserOrderCount
from services.lab.app.settings import SETTINGS
from services.lab.app.uow import UnitOfWork


UPDATED_STATUS = "UPDATED_WITHOUT_SAVE"


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    if SETTINGS.seed_on_startup:
        counts = await run_in_threadpool(seed_db, database_url=SETTINGS.database_url, seed_value=SETTINGS.seed_value)
        logger.info("seed_finished", seed=SETTINGS.seed_value, counts=counts)
    yield


app = FastAPI(title="ORM Pitfalls Lab API", version="0.1.0", lifespan=lifespan)
configure_logging(SETTINGS.log_level)
observability.add_metrics_middleware(app, service_name="lab")
if SETTINGS.tracing_enabled:
    observability.setup_tracing(app, ENGINE, service_name="lab")


@app.get("/healthz")
def healthz(session: Session = Depends(get_session)) -> dict:
    session.execute(sa.text("SELECT 1"))
    return {"ok": True}


@app.get("/api/lab/nplus1", response_model=list[OrderOut])
def nplus1() -> list[OrderOut]:
    with UnitOfWork(SESSIONMAKER, read_only=True) as uow, observability.count_statements() as tally:
        orders = queries.load_orders_with_users(uow.session)
        out = [OrderOut.model_validate(o) for o in orders]
    logger.info("lab_call_finished", scenario="nplus1", orders=len(out), statements=tally.count)
    return out


@app.get("/api/lab/dirty-checking", response_class=PlainTextResponse)
def dirty_checking() -> str:
    with UnitOfWork(SESSIONMAKER) as uow:
        order = queries.mark_order_status(uow.session, SETTINGS.demo_order_id, UPDATED_STATUS)
    # Committed on leaving the unit of work; no save call was made.
    logger.info("lab_call_finished", scenario="dirty_checking", order_id=order.id, status=order.status)
    return f"Order status updated to: {order.status}"


@app.get("/api/lab/lazy-exception", response_class=PlainTextResponse)
def lazy_exception() -> str:
    with UnitOfWork(SESSIONMAKER, read_only=True) as uow:
        order = queries.get_order(uow.session, SETTINGS.demo_order_id)

    # The session is closed here, so the lazy products collection can no longer be loaded.
    try:
        product_count = queries.count_order_products(order)
    except DetachedInstanceError as e:
        logger.info("detached_access_caught", scenario="lazy_exception", order_id=order.id, error=str(e))
        return f"Detached access caught: {e}"
    return f"Number of products: {product_count}"


@app.get("/api/lab/lazy-correct", response_class=PlainTextResponse)
def lazy_correct() -> str:
    with UnitOfWork(SESSIONMAKER, read_only=True) as uow:
        order = queries.get_order(uow.session, SETTINGS.demo_order_id)
        product_count = queries.count_order_products(order)
    logger.info("lab_call_finished", scenario="lazy_correct", order_id=order.id, products=product_count)
    return f"Number of products (within transaction): {product_count}"


@app.get("/api/lab/cartesian-explosion", response_class=PlainTextResponse)
def cartesian_explosion() -> str:
    with UnitOfWork(SESSIONMAKER, read_only=True) as uow:
        summary = queries.summarize_join_fetch(uow.session)
    logger.info("lab_call_finished", scenario="cartesian_explosion", statements=summary.statements)
    # An inner join over users/orders/products yields exactly one row per product link.
    return (
        f"Cartesian explosion demo: fetched {summary.users} users with {summary.orders} orders and "
        f"{summary.product_links} product associations in {summary.statements} statement(s). "
        f"The join returned {summary.product_links} rows, collapsed in memory into "
        f"{summary.users} distinct users and {summary.orders} distinct orders."
    )


@app.get("/api/lab/join-vs-fetch", response_class=PlainTextResponse)
def join_vs_fetch() -> str:
    with UnitOfWork(SESSIONMAKER, read_only=True) as uow:
        join, fetch = queries.compare_join_strategies(uow.session, SETTINGS.join_demo_limit)
    logger.info(
        "lab_call_finished",
        scenario="join_vs_fetch",
        join_statements=join.statements,
        fetch_statements=fetch.statements,
    )
    return (
        "=== JOIN without FETCH ===\n"
        f"Fetched {join.users} users with {join.orders} orders.\n"
        f"Executed {join.statements} statements (1 for users + 1 per user for its orders).\n"
        "\n"
        "=== JOIN FETCH ===\n"
        f"Fetched {fetch.users} users with {fetch.orders} orders.\n"
        f"Executed {fetch.statements} statement(s); everything arrived in the first round trip.\n"
    )


@app.get("/api/lab/dto-projection", response_model=list[UserOrderCount])
def dto_projection() -> list[UserOrderCount]:
    with UnitOfWork(SESSIONMAKER, read_only=True) as uow:
        rows = queries.top_users_by_order_count(uow.session, SETTINGS.projection_limit)
    logger.info("lab_call_finished", scenario="dto_projection", rows=len(rows))
    return rows
