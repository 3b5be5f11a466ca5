"""Pydantic schemas for the Trade API."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from automator.models.trade import Side, TradeStatus, CloseReason, PriceSource


class TradeCreate(BaseModel):
    side: Side
    lot_size: Decimal = Field(gt=0, max_digits=14, decimal_places=4)
    tp1: Decimal = Field(gt=0)
    tp2: Decimal = Field(gt=0)
    sl: Decimal = Field(gt=0)
    partial_close_percent: int = Field(default=75, ge=1, le=100)

    @model_validator(mode="after")
    def _validate_levels(self):
        # Take-profits must sit on the profitable side of the stop, in order
        if self.side == Side.BUY:
            if self.tp1 <= self.sl or self.tp2 <= self.tp1:
                raise ValueError("Invalid TP/SL levels for buy order: need sl < tp1 < tp2")
        else:
            if self.tp1 >= self.sl or self.tp2 >= self.tp1:
                raise ValueError("Invalid TP/SL levels for sell order: need sl > tp1 > tp2")
        return self


class TradeRead(BaseModel):
    id: int
    owner_id: str
    broker_order_id: str | None
    instrument: str
    side: Side
    lot_size: Decimal
    entry_price: Decimal
    current_price: Decimal
    tp1: Decimal
    tp2: Decimal
    sl: Decimal
    partial_close_percent: int
    status: TradeStatus
    tp1_hit: bool
    sl_moved_to_breakeven: bool
    unrealized_pl: Decimal
    realized_pl: Decimal
    price_source: PriceSource
    open_time: datetime
    close_time: datetime | None
    close_reason: CloseReason | None

    model_config = {"from_attributes": True}


class AccountRead(BaseModel):
    owner_id: str
    balance: Decimal
    unrealized_pl: Decimal
    margin_used: Decimal
    last_updated: datetime

    model_config = {"from_attributes": True}
