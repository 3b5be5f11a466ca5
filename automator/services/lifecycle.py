"""Stateless lifecycle math for monitored trades.

All functions are pure computation without I/O or database access. Prices and
lot sizes are Decimals. Money is rounded to cents per leg: a partial TP1 leg
and the final leg are each rounded on their own, and the running total is the
rounded sum of rounded legs.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP

from automator.models.trade import Side, Trade
from automator.utils.constants import CONTRACT_SIZE, LOT_QUANT, MONEY_QUANT


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def to_lots(value: Decimal) -> Decimal:
    """Round a lot size down to the stored precision."""
    return Decimal(value).quantize(LOT_QUANT, rounding=ROUND_DOWN)


def lots_to_units(lots: Decimal) -> int:
    return int((lots * CONTRACT_SIZE).to_integral_value(rounding=ROUND_HALF_UP))


def compute_pnl(side: Side, entry_price: Decimal, price: Decimal, lots: Decimal) -> Decimal:
    """Unrounded P&L of `lots` opened at `entry_price` and valued at `price`."""
    return (price - entry_price) * lots * side.sign


def crossed_favorably(side: Side, price: Decimal, level: Decimal) -> bool:
    return price >= level if side == Side.BUY else price <= level


def crossed_adversely(side: Side, price: Decimal, level: Decimal) -> bool:
    return price <= level if side == Side.BUY else price >= level


# ---------------------------------------------------------------------------
# Trigger predicates
# ---------------------------------------------------------------------------

def tp1_triggered(trade: Trade, price: Decimal) -> bool:
    if trade.is_closed or trade.tp1_hit:
        return False
    return crossed_favorably(trade.side, price, trade.tp1)


def tp2_triggered(trade: Trade, price: Decimal) -> bool:
    if trade.is_closed or not trade.tp1_hit:
        return False
    return crossed_favorably(trade.side, price, trade.tp2)


def sl_triggered(trade: Trade, price: Decimal) -> bool:
    if trade.is_closed:
        return False
    return crossed_adversely(trade.side, price, trade.sl)


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

@dataclass
class PartialClosePlan:
    """What a TP1 trigger closes and what it leaves behind."""
    close_lots: Decimal
    close_units: int
    remaining_lots: Decimal
    leg_pl: Decimal
    full_close: bool = False  # nothing would remain after the partial


@dataclass
class FinalClosePlan:
    leg_pl: Decimal
    total_realized_pl: Decimal


def unrealized_pl(trade: Trade, price: Decimal) -> Decimal:
    return to_money(compute_pnl(trade.side, trade.entry_price, price, trade.lot_size))


def plan_tp1(trade: Trade, price: Decimal) -> PartialClosePlan:
    """Split the position at TP1.

    The remaining size is rounded down, so for any percent below 100 the
    remainder is strictly smaller than the current size. The closed amount is
    whatever the remainder does not keep.
    """
    pct = Decimal(trade.partial_close_percent)
    remaining = to_lots(trade.lot_size * (Decimal(100) - pct) / Decimal(100))
    if remaining < 0:
        remaining = Decimal("0")
    close_lots = trade.lot_size - remaining
    leg = to_money(compute_pnl(trade.side, trade.entry_price, price, close_lots))
    return PartialClosePlan(
        close_lots=close_lots,
        close_units=lots_to_units(close_lots),
        remaining_lots=remaining,
        leg_pl=leg,
        full_close=remaining <= 0,
    )


def plan_final_close(trade: Trade, price: Decimal) -> FinalClosePlan:
    """Close whatever lot size remains and add the leg to realized P&L."""
    leg = to_money(compute_pnl(trade.side, trade.entry_price, price, trade.lot_size))
    return FinalClosePlan(leg_pl=leg, total_realized_pl=to_money(trade.realized_pl + leg))
