"""Account API."""

from fastapi import APIRouter, Depends

from automator.api.deps import get_trade_service
from automator.schemas.trade import AccountRead
from automator.services.trade_service import TradeService

router = APIRouter(prefix="/api/account", tags=["account"])


@router.get("", response_model=AccountRead)
async def get_account(service: TradeService = Depends(get_trade_service)):
    """Stored account, refreshed from the broker summary when it is reachable."""
    return await service.get_account()
