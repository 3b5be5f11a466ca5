"""Trade model: one user-placed XAU_USD position and its lifecycle state."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlmodel import SQLModel, Field


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def sign(self) -> int:
        return 1 if self is Side.BUY else -1


class TradeStatus(str, Enum):
    OPEN = "open"
    TP1_HIT = "tp1_hit"
    CLOSED = "closed"


class CloseReason(str, Enum):
    TP1 = "tp1"  # partial close of 100% at TP1
    TP2 = "tp2"
    STOP_LOSS = "stop_loss"
    MANUAL = "manual"


class PriceSource(str, Enum):
    LIVE = "live"
    SIMULATED = "simulated"


class Trade(SQLModel, table=True):
    __tablename__ = "trade"

    id: int | None = Field(default=None, primary_key=True)
    owner_id: str = Field(index=True)
    broker_order_id: str | None = None  # broker trade id, target of SL modification
    instrument: str = "XAU_USD"
    side: Side
    lot_size: Decimal = Field(max_digits=14, decimal_places=4)
    entry_price: Decimal = Field(max_digits=15, decimal_places=5)
    current_price: Decimal = Field(max_digits=15, decimal_places=5)
    tp1: Decimal = Field(max_digits=15, decimal_places=5)
    tp2: Decimal = Field(max_digits=15, decimal_places=5)
    sl: Decimal = Field(max_digits=15, decimal_places=5)
    partial_close_percent: int = 75

    status: TradeStatus = Field(default=TradeStatus.OPEN, index=True)
    tp1_hit: bool = False
    sl_moved_to_breakeven: bool = False
    unrealized_pl: Decimal = Field(default=Decimal("0"), max_digits=15, decimal_places=2)
    realized_pl: Decimal = Field(default=Decimal("0"), max_digits=15, decimal_places=2)
    price_source: PriceSource = PriceSource.LIVE

    open_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    close_time: datetime | None = None
    close_reason: CloseReason | None = None

    @property
    def is_closed(self) -> bool:
        return self.status == TradeStatus.CLOSED
