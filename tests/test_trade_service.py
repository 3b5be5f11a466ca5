"""Tests for order placement, manual close and the trade request schema."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from automator.errors import BrokerTransportError, TradeNotFoundError
from automator.models.trade import CloseReason, PriceSource, Side, TradeStatus
from automator.schemas.trade import TradeCreate
from automator.services.trade_service import TradeService

from tests.helpers import OWNER, make_trade


def _service(store, broker, **kwargs) -> TradeService:
    return TradeService(store, broker, OWNER, **kwargs)


def _buy_request(**kwargs) -> TradeCreate:
    params = dict(side="buy", lot_size="1.0", tp1="1990", tp2="1995", sl="1980")
    params.update(kwargs)
    return TradeCreate(**params)


# ---------------------------------------------------------------------------
# 1. Request validation
# ---------------------------------------------------------------------------

class TestTradeCreate:
    def test_buy_defaults(self):
        data = _buy_request()
        assert data.side == Side.BUY
        assert data.partial_close_percent == 75

    def test_valid_sell(self):
        data = TradeCreate(side="sell", lot_size="0.5", tp1="1995", tp2="1990", sl="2005")
        assert data.side == Side.SELL

    def test_buy_tp1_below_sl_rejected(self):
        with pytest.raises(ValidationError, match="Invalid TP/SL levels for buy"):
            _buy_request(tp1="1979")

    def test_buy_tp2_below_tp1_rejected(self):
        with pytest.raises(ValidationError):
            _buy_request(tp2="1989")

    def test_sell_levels_on_wrong_side_rejected(self):
        with pytest.raises(ValidationError, match="Invalid TP/SL levels for sell"):
            TradeCreate(side="sell", lot_size="0.5", tp1="2010", tp2="2020", sl="2005")

    @pytest.mark.parametrize("lot", ["0", "-1"])
    def test_non_positive_lot_rejected(self, lot):
        with pytest.raises(ValidationError):
            _buy_request(lot_size=lot)

    @pytest.mark.parametrize("pct", [0, 101])
    def test_partial_close_percent_out_of_range(self, pct):
        with pytest.raises(ValidationError):
            _buy_request(partial_close_percent=pct)

    def test_unknown_side_rejected(self):
        with pytest.raises(ValidationError):
            _buy_request(side="hold")


# ---------------------------------------------------------------------------
# 2. Placement
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_place_buy_trade(store, broker):
    trade = await _service(store, broker).place_trade(_buy_request())

    assert broker.orders == [{
        "instrument": "XAU_USD",
        "units": 100_000,
        "take_profit": Decimal("1995"),
        "stop_loss": Decimal("1980"),
    }]
    stored = store.get_trade(trade.id)
    assert stored.status == TradeStatus.OPEN
    assert stored.broker_order_id == "T-9"
    assert stored.entry_price == Decimal("1987.45")
    assert stored.price_source == PriceSource.LIVE
    assert stored.partial_close_percent == 75
    assert [e.action for e in store.list_events(trade.id)] == ["open"]


@pytest.mark.asyncio
async def test_place_sell_trade_uses_negative_units(store, broker):
    data = TradeCreate(side="sell", lot_size="0.5", tp1="1995", tp2="1990", sl="2005")
    await _service(store, broker).place_trade(data)
    assert broker.orders[0]["units"] == -50_000


@pytest.mark.asyncio
async def test_place_trade_without_fill_price_uses_quote(store, broker):
    broker.fill_price = None
    broker.set_price(bid="1987.00", ask="1987.30")

    trade = await _service(store, broker).place_trade(_buy_request())

    assert trade.entry_price == Decimal("1987.30")


@pytest.mark.asyncio
async def test_place_trade_broker_failure_stores_nothing(store, broker):
    broker.fail_order = True

    with pytest.raises(BrokerTransportError):
        await _service(store, broker).place_trade(_buy_request())

    assert store.list_trades(OWNER) == []


# ---------------------------------------------------------------------------
# 3. Manual close
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_manual_close(store, broker):
    trade = make_trade(store)
    broker.set_price("1989.00")

    closed = await _service(store, broker).close_trade(trade.id)

    assert closed.status == TradeStatus.CLOSED
    assert closed.close_reason == CloseReason.MANUAL
    assert closed.realized_pl == Decimal("2.00")
    assert closed.close_time is not None
    assert broker.close_calls == [("XAU_USD", Side.BUY, 100_000)]
    assert store.get_account(OWNER).balance == Decimal("10002.00")


@pytest.mark.asyncio
async def test_manual_close_after_tp1_adds_to_realized(store, broker):
    trade = make_trade(store)
    store.update_trade(
        trade.id,
        tp1_hit=True,
        status=TradeStatus.TP1_HIT,
        sl=Decimal("1987.00"),
        lot_size=Decimal("0.25"),
        realized_pl=Decimal("2.25"),
    )
    broker.set_price("1991.00")

    closed = await _service(store, broker).close_trade(trade.id)

    assert closed.realized_pl == Decimal("3.25")
    assert broker.close_calls == [("XAU_USD", Side.BUY, 25_000)]


@pytest.mark.asyncio
async def test_manual_close_leaves_other_same_side_trade(store, broker):
    closing = make_trade(store, lot="0.5")
    other = make_trade(store, lot="0.3")
    broker.set_price("1989.00")

    await _service(store, broker).close_trade(closing.id)

    assert broker.close_calls == [("XAU_USD", Side.BUY, 50_000)]
    assert store.get_trade(other.id).status == TradeStatus.OPEN


@pytest.mark.asyncio
async def test_manual_close_is_idempotent(store, broker):
    trade = make_trade(store)
    broker.set_price("1989.00")
    service = _service(store, broker)

    first = await service.close_trade(trade.id)
    broker.set_price("1999.00")
    second = await service.close_trade(trade.id)

    assert len(broker.close_calls) == 1
    assert second.realized_pl == first.realized_pl
    assert second.close_time == first.close_time
    assert store.get_account(OWNER).balance == Decimal("10002.00")


@pytest.mark.asyncio
async def test_manual_close_racing_monitor_close(store, broker):
    trade = make_trade(store)
    broker.set_price("1979.00")

    # The monitor's stop-loss lands while the manual close is at the broker
    broker.on_close = lambda: store.close_trade(
        trade.id,
        close_time=datetime.now(timezone.utc),
        realized_pl=Decimal("-8.00"),
        reason=CloseReason.STOP_LOSS,
    )

    result = await _service(store, broker).close_trade(trade.id)

    assert result.close_reason == CloseReason.STOP_LOSS
    assert result.realized_pl == Decimal("-8.00")
    assert store.get_account(OWNER).balance == Decimal("10000.00")


@pytest.mark.asyncio
async def test_manual_close_missing_trade(store, broker):
    with pytest.raises(TradeNotFoundError):
        await _service(store, broker).close_trade(404)


@pytest.mark.asyncio
async def test_manual_close_broker_failure_keeps_trade_open(store, broker):
    trade = make_trade(store)
    broker.fail_close = True

    with pytest.raises(BrokerTransportError):
        await _service(store, broker).close_trade(trade.id)

    assert store.get_trade(trade.id).status == TradeStatus.OPEN


@pytest.mark.asyncio
async def test_get_account_creates_missing_account(store, broker):
    account = await TradeService(store, broker, "fresh-owner").get_account()
    assert account.owner_id == "fresh-owner"
    assert account.balance == Decimal("10000.00")
