"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager
from decimal import Decimal

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from automator.config import settings
from automator.database import create_db_and_tables, make_engine
from automator.utils.logging import setup_logging
from automator.api import account, markets, positions, system, trades


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service objects, start the monitor, and tear down on shutdown."""
    setup_logging()

    from automator.engine.trade_monitor import TradeMonitor
    from automator.services.market_data import SimulatedFeed
    from automator.services.oanda_client import OandaClient
    from automator.services.trade_service import TradeService
    from automator.services.trade_store import TradeStore

    engine = make_engine(settings.database_url)
    create_db_and_tables(engine)
    store = TradeStore(engine)
    store.ensure_account(settings.owner_id, Decimal(settings.starting_balance))

    broker = OandaClient(
        api_key=settings.oanda_api_key,
        account_id=settings.oanda_account_id,
        base_url=settings.oanda_base_url,
        timeout=settings.oanda_timeout_seconds,
        feed=SimulatedFeed(seed=settings.simulated_seed),
    )
    monitor = TradeMonitor(
        store=store,
        broker=broker,
        owner_id=settings.owner_id,
        interval_seconds=settings.monitor_interval_seconds,
        account_sync_seconds=settings.account_sync_interval_seconds,
        trigger_on_simulated_quotes=settings.trigger_on_simulated_quotes,
    )
    trade_service = TradeService(store, broker, settings.owner_id, instrument=settings.instrument)

    # Start Telegram bot if configured
    telegram_bot = None
    if settings.telegram_bot_token:
        from automator.services.telegram_bot import TelegramBot

        telegram_bot = TelegramBot(
            token=settings.telegram_bot_token,
            chat_ids=settings.telegram_chat_ids,
            store=store,
            monitor=monitor,
            owner_id=settings.owner_id,
            app_loop=asyncio.get_running_loop(),
        )
        monitor.notifier = telegram_bot.notify
        trade_service.notifier = telegram_bot.notify
        telegram_bot.start()

    app.state.store = store
    app.state.broker = broker
    app.state.monitor = monitor
    app.state.trade_service = trade_service

    monitor.start()

    yield

    monitor.stop()
    if telegram_bot:
        telegram_bot.stop()
    await broker.close()
    engine.dispose()


app = FastAPI(
    title="XAU Trade Automator",
    description="Automated TP1/TP2/breakeven management for XAU_USD positions",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(trades.router)
app.include_router(positions.router)
app.include_router(markets.router)
app.include_router(account.router)
app.include_router(system.router)
