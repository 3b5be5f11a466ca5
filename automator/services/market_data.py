"""Market data types, OANDA candle parsing and the simulated price feed.

The simulated feed backs the broker client whenever live data is unavailable:
in mock mode (no credentials) and as the read-path fallback on transport
failure. Every value it produces is tagged as simulated.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

import numpy as np
import pandas as pd

from automator.models.trade import PriceSource, Side
from automator.utils.constants import (
    GRANULARITY_SECONDS,
    Granularity,
    REFERENCE_PRICE,
    SIMULATED_MAX_DRIFT,
    SIMULATED_SPREAD,
)


@dataclass(frozen=True)
class Quote:
    bid: Decimal
    ask: Decimal
    spread: Decimal
    source: PriceSource = PriceSource.LIVE
    time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def simulated(self) -> bool:
        return self.source == PriceSource.SIMULATED

    @property
    def mid(self) -> Decimal:
        return (self.bid + self.ask) / 2

    def exit_price(self, side: Side) -> Decimal:
        """Price a position of `side` would be closed at."""
        return self.bid if side == Side.BUY else self.ask

    def entry_price(self, side: Side) -> Decimal:
        return self.ask if side == Side.BUY else self.bid


@dataclass(frozen=True)
class Candle:
    time: int  # unix seconds, candle open
    open: float
    high: float
    low: float
    close: float
    volume: int


class SimulatedFeed:
    """Bounded random walk around a reference price.

    The walk never leaves reference ± max_drift. `anchor()` re-centres it on
    the last live mid so a fallback continues near the real market.
    """

    def __init__(
        self,
        reference: Decimal = REFERENCE_PRICE,
        spread: Decimal = SIMULATED_SPREAD,
        max_drift: Decimal = SIMULATED_MAX_DRIFT,
        seed: int | None = None,
        step_std: float = 0.5,
    ):
        self.reference = float(reference)
        self.spread = Decimal(spread)
        self.max_drift = float(max_drift)
        self.step_std = step_std
        self._rng = np.random.default_rng(seed)
        self._mid = self.reference

    def anchor(self, mid: Decimal):
        self.reference = float(mid)
        self._mid = self.reference

    def _clip(self, values):
        return np.clip(values, self.reference - self.max_drift, self.reference + self.max_drift)

    def next_quote(self) -> Quote:
        self._mid = float(self._clip(self._mid + self._rng.normal(0.0, self.step_std)))
        bid = Decimal(f"{self._mid:.2f}")
        return Quote(
            bid=bid,
            ask=bid + self.spread,
            spread=self.spread,
            source=PriceSource.SIMULATED,
        )

    def candles(self, granularity: Granularity, count: int) -> list[Candle]:
        """Generate `count` candles ending at the current walk position, oldest first."""
        if count <= 0:
            return []
        interval = GRANULARITY_SECONDS[granularity]
        now = int(datetime.now(timezone.utc).timestamp())
        last_open = now - now % interval

        steps = self._rng.normal(0.0, self.step_std * 2, size=count)
        walk = np.cumsum(steps)
        closes = self._clip(self._mid + walk - walk[-1])
        opens = np.concatenate(([closes[0] - steps[0]], closes[:-1]))
        opens = self._clip(opens)
        highs = np.maximum(opens, closes) + np.abs(self._rng.normal(0.0, self.step_std, size=count))
        lows = np.minimum(opens, closes) - np.abs(self._rng.normal(0.0, self.step_std, size=count))
        volumes = self._rng.integers(100, 1100, size=count)

        return [
            Candle(
                time=last_open - (count - 1 - i) * interval,
                open=round(float(opens[i]), 2),
                high=round(float(highs[i]), 2),
                low=round(float(lows[i]), 2),
                close=round(float(closes[i]), 2),
                volume=int(volumes[i]),
            )
            for i in range(count)
        ]


def parse_candles(candles: list[dict]) -> list[Candle]:
    """Parse an OANDA candles response (mid prices) into Candles, oldest first.

    Each candle dict: {"time": "2024-01-02T10:00:00.000000000Z", "volume": 42,
                       "complete": true, "mid": {"o": "2063.1", "h": ..., "l": ..., "c": ...}}

    Candles without mid prices and rows with non-numeric prices are dropped.
    Raises ValueError when the payload itself is not shaped like candles.
    """
    if not candles:
        return []

    try:
        records = [
            {
                "time": c["time"],
                "open": c["mid"]["o"],
                "high": c["mid"]["h"],
                "low": c["mid"]["l"],
                "close": c["mid"]["c"],
                "volume": c.get("volume", 0),
            }
            for c in candles
            if c.get("mid")
        ]
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Malformed candle payload: {e!r}") from e

    df = pd.DataFrame(records)
    if df.empty:
        return []

    df["time"] = pd.to_datetime(df["time"], utc=True)
    for col in ("open", "high", "low", "close"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["volume"] = pd.to_numeric(df["volume"], errors="coerce").fillna(0)
    df = df.dropna().sort_values("time")

    return [
        Candle(
            time=int(row.time.timestamp()),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=int(row.volume),
        )
        for row in df.itertuples(index=False)
    ]
