"""Trades API: place, list, inspect and manually close trades."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from automator.api.deps import get_store, get_trade_service
from automator.errors import BrokerError, TradeNotFoundError
from automator.schemas.trade import AccountRead, TradeCreate, TradeRead
from automator.services.trade_service import TradeService
from automator.services.trade_store import TradeStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/trades", tags=["trades"])


@router.post("", response_model=TradeRead)
async def place_trade(
    body: TradeCreate,
    service: TradeService = Depends(get_trade_service),
):
    try:
        return await service.place_trade(body)
    except BrokerError as e:
        logger.error(f"Trade placement failed: {e}")
        raise HTTPException(status_code=502, detail=f"Broker error: {e}")


@router.get("", response_model=list[TradeRead])
def list_trades(
    limit: int = 100,
    offset: int = 0,
    store: TradeStore = Depends(get_store),
    service: TradeService = Depends(get_trade_service),
):
    return store.list_trades(service.owner_id, limit=limit, offset=offset)


@router.get("/status")
def trade_status(
    store: TradeStore = Depends(get_store),
    service: TradeService = Depends(get_trade_service),
):
    """Active trades and account, for polling clients."""
    active = store.get_active_trades(service.owner_id)
    account = store.get_account(service.owner_id)
    return {
        "active_trades": [TradeRead.model_validate(t) for t in active],
        "account": AccountRead.model_validate(account) if account else None,
    }


@router.get("/{trade_id}", response_model=TradeRead)
def get_trade(trade_id: int, store: TradeStore = Depends(get_store)):
    try:
        return store.get_trade(trade_id)
    except TradeNotFoundError:
        raise HTTPException(status_code=404, detail="Trade not found")


@router.get("/{trade_id}/events")
def trade_events(trade_id: int, store: TradeStore = Depends(get_store)):
    try:
        store.get_trade(trade_id)
    except TradeNotFoundError:
        raise HTTPException(status_code=404, detail="Trade not found")
    return store.list_events(trade_id)


@router.post("/{trade_id}/close", response_model=TradeRead)
async def close_trade(
    trade_id: int,
    service: TradeService = Depends(get_trade_service),
):
    """Close a trade at market. Closing an already-closed trade succeeds unchanged."""
    try:
        return await service.close_trade(trade_id)
    except TradeNotFoundError:
        raise HTTPException(status_code=404, detail="Trade not found")
    except BrokerError as e:
        logger.error(f"[trade {trade_id}] Manual close failed: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to close position with broker: {e}")
