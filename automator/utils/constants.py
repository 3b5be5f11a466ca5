"""Shared constants for the XAU_USD position model."""

from decimal import Decimal
from enum import Enum

INSTRUMENT = "XAU_USD"

# 1.0 lot = 100,000 units of the instrument
CONTRACT_SIZE = 100_000

# Centre of the simulated random walk, and its fixed spread
REFERENCE_PRICE = Decimal("1987.00")
SIMULATED_SPREAD = Decimal("0.22")
SIMULATED_MAX_DRIFT = Decimal("25.00")

DEFAULT_BALANCE = Decimal("10000.00")

PRICE_QUANT = Decimal("0.00001")
LOT_QUANT = Decimal("0.0001")
MONEY_QUANT = Decimal("0.01")

MAX_CANDLES = 5000


class Granularity(str, Enum):
    M1 = "M1"
    M5 = "M5"
    M15 = "M15"
    H1 = "H1"
    H4 = "H4"
    D = "D"


GRANULARITY_SECONDS: dict[Granularity, int] = {
    Granularity.M1: 60,
    Granularity.M5: 300,
    Granularity.M15: 900,
    Granularity.H1: 3600,
    Granularity.H4: 14400,
    Granularity.D: 86400,
}
