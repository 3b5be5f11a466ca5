"""Tests for the simulated price feed and candle parsing."""

from decimal import Decimal

import pytest

from automator.models.trade import PriceSource, Side
from automator.services.market_data import Quote, SimulatedFeed, parse_candles
from automator.utils.constants import Granularity


def test_quote_exit_and_entry_prices():
    quote = Quote(bid=Decimal("1990.00"), ask=Decimal("1990.22"), spread=Decimal("0.22"))
    assert quote.exit_price(Side.BUY) == Decimal("1990.00")
    assert quote.exit_price(Side.SELL) == Decimal("1990.22")
    assert quote.entry_price(Side.BUY) == Decimal("1990.22")
    assert quote.mid == Decimal("1990.11")
    assert quote.simulated is False


def test_simulated_feed_stays_within_bounds():
    feed = SimulatedFeed(reference=Decimal("1987.00"), max_drift=Decimal("25.00"), seed=3, step_std=5.0)
    for _ in range(2000):
        quote = feed.next_quote()
        assert quote.source == PriceSource.SIMULATED
        assert quote.ask - quote.bid == Decimal("0.22")
        assert Decimal("1961.99") <= quote.bid <= Decimal("2012.01")


def test_simulated_feed_is_reproducible_with_seed():
    a = [SimulatedFeed(seed=11).next_quote().bid for _ in range(3)]
    b = [SimulatedFeed(seed=11).next_quote().bid for _ in range(3)]
    assert a == b


def test_anchor_recentres_walk():
    feed = SimulatedFeed(seed=5)
    feed.anchor(Decimal("2400.00"))
    quote = feed.next_quote()
    assert abs(quote.bid - Decimal("2400.00")) <= Decimal("25.01")


def test_simulated_candles_ordering():
    feed = SimulatedFeed(seed=9)
    candles = feed.candles(Granularity.M5, 50)
    assert len(candles) == 50
    assert all(b.time - a.time == 300 for a, b in zip(candles, candles[1:]))
    assert feed.candles(Granularity.M5, 0) == []


def test_parse_candles_skips_bad_rows():
    raw = [
        {"time": "2024-01-02T10:00:00Z", "volume": 3, "mid": {"o": "1", "h": "2", "l": "0.5", "c": "1.5"}},
        {"time": "2024-01-02T10:01:00Z", "volume": 3, "mid": {"o": "x", "h": "2", "l": "0.5", "c": "1.5"}},
        {"time": "2024-01-02T10:02:00Z", "volume": 3},
    ]
    candles = parse_candles(raw)
    assert len(candles) == 1
    assert candles[0].open == 1.0


def test_parse_candles_empty():
    assert parse_candles([]) == []


@pytest.mark.parametrize("raw", [
    [{"time": "2024-01-02T10:00:00Z", "mid": "bad"}],
    [{"volume": 3, "mid": {"o": "1", "h": "2", "l": "0.5", "c": "1.5"}}],
    ["not-a-candle"],
])
def test_parse_candles_rejects_malformed_payload(raw):
    with pytest.raises(ValueError, match="Malformed candle payload"):
        parse_candles(raw)
