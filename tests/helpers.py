"""Test doubles and trade factories shared across the test modules."""

from decimal import Decimal

from automator.errors import BrokerTransportError
from automator.models.trade import PriceSource, Side, Trade
from automator.services.market_data import Quote
from automator.services.oanda_client import AccountSummary, CloseResult, OrderFill
from automator.services.trade_store import TradeStore

OWNER = "default-user"


class FakeBroker:
    """In-process stand-in for OandaClient with scripted prices and failures."""

    def __init__(self):
        self.mock_mode = False
        self.quote = Quote(bid=Decimal("1987.00"), ask=Decimal("1987.22"), spread=Decimal("0.22"))
        self.price_failures = 0
        self.fail_close = False
        self.fail_modify = False
        self.fail_order = False
        self.fill_price: Decimal | None = Decimal("1987.45")
        self.order_id = "T-9"
        self.summary = AccountSummary(
            balance=Decimal("10000.00"),
            unrealized_pl=Decimal("0.00"),
            margin_used=Decimal("0.00"),
            live=False,
        )
        self.close_calls: list[tuple] = []
        self.modify_calls: list[tuple] = []
        self.orders: list[dict] = []
        self.on_close = None  # optional hook run before a close returns

    def set_price(self, bid, ask=None, source=PriceSource.LIVE):
        bid = Decimal(str(bid))
        ask = Decimal(str(ask)) if ask is not None else bid + Decimal("0.22")
        self.quote = Quote(bid=bid, ask=ask, spread=ask - bid, source=source)

    async def get_current_price(self, instrument="XAU_USD"):
        if self.price_failures > 0:
            self.price_failures -= 1
            raise RuntimeError("quote feed exploded")
        return self.quote

    async def place_market_order(self, instrument, units, take_profit=None, stop_loss=None):
        self.orders.append({
            "instrument": instrument,
            "units": units,
            "take_profit": take_profit,
            "stop_loss": stop_loss,
        })
        if self.fail_order:
            raise BrokerTransportError("order endpoint unreachable")
        return OrderFill(order_id=self.order_id, fill_price=self.fill_price)

    async def close_position(self, instrument, side, partial_units=None):
        self.close_calls.append((instrument, side, partial_units))
        if self.fail_close:
            raise BrokerTransportError("close endpoint unreachable")
        if self.on_close:
            self.on_close()
        return CloseResult(success=True, closed_price=self.quote.exit_price(side))

    async def modify_stop_loss(self, trade_id, new_price):
        self.modify_calls.append((trade_id, new_price))
        if self.fail_modify:
            raise BrokerTransportError("stop-loss endpoint unreachable")
        return True

    async def get_account_summary(self):
        return self.summary


def make_trade(
    store: TradeStore,
    side: Side = Side.BUY,
    entry="1987.00",
    tp1="1990.00",
    tp2="1995.00",
    sl="1980.00",
    lot="1.0",
    pct: int = 75,
    owner: str = OWNER,
    broker_order_id: str | None = "T-1",
) -> Trade:
    return store.create_trade(
        Trade(
            owner_id=owner,
            broker_order_id=broker_order_id,
            side=side,
            lot_size=Decimal(lot),
            entry_price=Decimal(entry),
            current_price=Decimal(entry),
            tp1=Decimal(tp1),
            tp2=Decimal(tp2),
            sl=Decimal(sl),
            partial_close_percent=pct,
        )
    )


def make_sell_trade(store: TradeStore, **kwargs) -> Trade:
    params = dict(side=Side.SELL, entry="2000.00", tp1="1995.00", tp2="1990.00", sl="2005.00")
    params.update(kwargs)
    return make_trade(store, **params)
