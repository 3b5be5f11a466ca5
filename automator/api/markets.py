"""Market data API: XAU_USD quote and candles."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query

from automator.api.deps import get_broker
from automator.services.oanda_client import OandaClient
from automator.utils.constants import INSTRUMENT, MAX_CANDLES, Granularity

router = APIRouter(prefix="/api/market", tags=["market"])


@router.get("/xauusd")
async def xauusd_quote(broker: OandaClient = Depends(get_broker)):
    quote = await broker.get_current_price(INSTRUMENT)
    return {
        "bid": str(quote.bid),
        "ask": str(quote.ask),
        "spread": str(quote.spread),
        "source": quote.source.value,
        "time": quote.time.isoformat(),
    }


@router.get("/xauusd/candles")
async def xauusd_candles(
    granularity: Granularity = Granularity.M1,
    count: int = Query(default=500, ge=1, le=MAX_CANDLES),
    broker: OandaClient = Depends(get_broker),
):
    candles = await broker.get_candles(INSTRUMENT, granularity, count)
    return [asdict(c) for c in candles]
