from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class LabSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="forbid")

    database_url: str
    log_level: str = "info"
    sql_echo: bool = False
    tracing_enabled: bool = False

    # Startup seeding (same generator as `python -m db.seed`).
    seed_on_startup: bool = True
    seed_value: int = 42

    # Fixed inputs of the lab scenarios.
    demo_order_id: int = 1
    join_demo_limit: int = 5
    projection_limit: int = 10


SETTINGS = LabSettings()
