"""Database models."""

from automator.models.trade import Trade, Side, TradeStatus, CloseReason, PriceSource
from automator.models.account import Account
from automator.models.trade_event import TradeEvent

__all__ = [
    "Trade",
    "Side",
    "TradeStatus",
    "CloseReason",
    "PriceSource",
    "Account",
    "TradeEvent",
]
