"""Open positions API."""

from fastapi import APIRouter, Depends

from automator.api.deps import get_store, get_trade_service
from automator.schemas.trade import TradeRead
from automator.services.trade_service import TradeService
from automator.services.trade_store import TradeStore

router = APIRouter(prefix="/api/positions", tags=["positions"])


@router.get("", response_model=list[TradeRead])
def list_positions(
    store: TradeStore = Depends(get_store),
    service: TradeService = Depends(get_trade_service),
):
    return store.get_active_trades(service.owner_id)
