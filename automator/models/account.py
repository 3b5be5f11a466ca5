"""Account model: balance and P&L aggregate for one owner."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlmodel import SQLModel, Field


class Account(SQLModel, table=True):
    __tablename__ = "account"

    id: int | None = Field(default=None, primary_key=True)
    owner_id: str = Field(index=True, unique=True)
    balance: Decimal = Field(default=Decimal("10000.00"), max_digits=17, decimal_places=2)
    unrealized_pl: Decimal = Field(default=Decimal("0"), max_digits=15, decimal_places=2)
    margin_used: Decimal = Field(default=Decimal("0"), max_digits=15, decimal_places=2)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
