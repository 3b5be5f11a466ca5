"""TradeEvent model: audit log of trigger attempts and evaluation errors."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class TradeEvent(SQLModel, table=True):
    __tablename__ = "trade_event"

    id: int | None = Field(default=None, primary_key=True)
    trade_id: int = Field(foreign_key="trade.id", index=True)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: str  # "success", "error", "warning"
    action: str  # "tp1", "tp2", "stop_loss", "manual_close", "tp1_failed", ...
    price: Decimal | None = Field(default=None, max_digits=15, decimal_places=5)
    price_source: str | None = None
    message: str | None = None
    data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
