from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass

from fastapi import FastAPI, Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)
from sqlalchemy import Engine, event

from services.lab.app.logging import logger


REGISTRY = CollectorRegistry()
ProcessCollector(registry=REGISTRY)
PlatformCollector(registry=REGISTRY)
GCCollector(registry=REGISTRY)

REQUEST_SUCCESS_TOTAL = Counter(
    "request_success_total",
    "Count of successful requests",
    ["service", "route", "method"],
    registry=REGISTRY,
)
REQUEST_LATENCY = Histogram(
    "request_latency_ms",
    "Request latency in milliseconds",
    ["service", "route", "method"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
    registry=REGISTRY,
)
REQUEST_STATEMENTS = Histogram(
    "request_sql_statements",
    "SQL statements executed per request",
    ["service", "route"],
    buckets=(0, 1, 2, 5, 10, 25, 50, 100, 250, 1000),
    registry=REGISTRY,
)
SQL_STATEMENTS_TOTAL = Counter("sql_statements_total", "SQL statements sent to the database", registry=REGISTRY)

QUERY_COUNT_HEADER = "X-Query-Count"


@dataclass
class StatementTally:
    """Number of statements executed while a `count_statements()` scope was active.

    Scopes nest: a statement counts towards every enclosing tally, so a request-level
    tally still sees statements that a scenario counted on its own.
    """

    count: int = 0
    parent: StatementTally | None = None

    def record(self) -> None:
        tally: StatementTally | None = self
        while tally is not None:
            tally.count += 1
            tally = tally.parent


_CURRENT_TALLY: ContextVar[StatementTally | None] = ContextVar("current_statement_tally", default=None)


@contextmanager
def count_statements() -> Iterator[StatementTally]:
    tally = StatementTally(parent=_CURRENT_TALLY.get())
    token = _CURRENT_TALLY.set(tally)
    try:
        yield tally
    finally:
        _CURRENT_TALLY.reset(token)


def _on_before_cursor_execute(conn, cursor, statement, parameters, context, executemany) -> None:
    SQL_STATEMENTS_TOTAL.inc()
    tally = _CURRENT_TALLY.get()
    if tally is not None:
        tally.record()


def instrument_statement_counter(engine: Engine) -> None:
    if not event.contains(engine, "before_cursor_execute", _on_before_cursor_execute):
        event.listen(engine, "before_cursor_execute", _on_before_cursor_execute)


def setup_tracing(app: FastAPI, engine: Engine, service_name: str) -> None:
    # Tracing is opt-in; its stack is only imported when enabled.
    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
    trace.set_tracer_provider(provider)
    FastAPIInstrumentor.instrument_app(app)
    SQLAlchemyInstrumentor().instrument(engine=engine)


def add_metrics_middleware(app: FastAPI, service_name: str) -> None:
    @app.middleware("http")
    async def _metrics(request: Request, call_next: Callable) -> Response:
        start = time.perf_counter()
        with count_statements() as tally:
            resp = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        route = request.scope.get("path", "unknown")
        method = request.method
        REQUEST_LATENCY.labels(service_name, route, method).observe(elapsed_ms)
        REQUEST_STATEMENTS.labels(service_name, route).observe(tally.count)
        if resp.status_code < 500:
            REQUEST_SUCCESS_TOTAL.labels(service_name, route, method).inc()
        resp.headers[QUERY_COUNT_HEADER] = str(tally.count)
        logger.info(
            "request_finished",
            route=route,
            method=method,
            status_code=resp.status_code,
            statements=tally.count,
            latency_ms=round(elapsed_ms, 2),
        )
        return resp

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
