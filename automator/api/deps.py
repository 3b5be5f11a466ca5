"""Shared API dependencies: service objects built in the app lifespan."""

from fastapi import Request

from automator.engine.trade_monitor import TradeMonitor
from automator.services.oanda_client import OandaClient
from automator.services.trade_service import TradeService
from automator.services.trade_store import TradeStore


def get_store(request: Request) -> TradeStore:
    return request.app.state.store


def get_broker(request: Request) -> OandaClient:
    return request.app.state.broker


def get_monitor(request: Request) -> TradeMonitor:
    return request.app.state.monitor


def get_trade_service(request: Request) -> TradeService:
    return request.app.state.trade_service
