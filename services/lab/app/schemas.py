from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class OrmModel(StrictModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)


class UserOut(OrmModel):
    id: int
    name: str
    email: str


class OrderOut(OrmModel):
    id: int
    order_date: datetime
    status: str
    user: UserOut


class UserOrderCount(StrictModel):
    """Projection row: only the columns the report needs, no entity state."""

    user_name: str
    order_count: int
