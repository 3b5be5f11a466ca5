"""Order placement and manual close, the two lifecycle entry points outside the monitor."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from automator.engine.account_sync import sync_account
from automator.errors import BrokerRejectedError, StateConflictError
from automator.models.account import Account
from automator.models.trade import CloseReason, PriceSource, Trade
from automator.schemas.trade import TradeCreate
from automator.services import lifecycle
from automator.services.trade_store import TradeStore
from automator.utils.constants import INSTRUMENT

logger = logging.getLogger(__name__)


class TradeService:
    def __init__(
        self,
        store: TradeStore,
        broker,
        owner_id: str,
        instrument: str = INSTRUMENT,
        notifier: Callable[[str], None] | None = None,
    ):
        self.store = store
        self.broker = broker
        self.owner_id = owner_id
        self.instrument = instrument
        self.notifier = notifier

    async def place_trade(self, data: TradeCreate) -> Trade:
        """Submit a market order and persist the resulting open trade.

        TP2 and the initial SL ride on the broker order as attached
        take-profit/stop-loss; TP1 and the breakeven move are handled by the
        monitor. Broker failures propagate and nothing is stored.
        """
        quote = await self.broker.get_current_price(self.instrument)
        if quote.simulated and not getattr(self.broker, "mock_mode", False):
            logger.warning("Placing order while the quote feed is degraded to simulated data")

        units = lifecycle.lots_to_units(data.lot_size) * data.side.sign
        fill = await self.broker.place_market_order(
            self.instrument,
            units,
            take_profit=data.tp2,
            stop_loss=data.sl,
        )

        entry_price = fill.fill_price or quote.entry_price(data.side)
        if fill.simulated:
            source = PriceSource.SIMULATED
        elif fill.fill_price is not None:
            source = PriceSource.LIVE
        else:
            source = quote.source

        trade = self.store.create_trade(
            Trade(
                owner_id=self.owner_id,
                broker_order_id=fill.order_id,
                instrument=self.instrument,
                side=data.side,
                lot_size=data.lot_size,
                entry_price=entry_price,
                current_price=entry_price,
                tp1=data.tp1,
                tp2=data.tp2,
                sl=data.sl,
                partial_close_percent=data.partial_close_percent,
                price_source=source,
            )
        )
        self.store.record_event(
            trade.id, "success", "open", price=entry_price, price_source=source.value,
            message=f"{data.side.value.upper()} {data.lot_size} lots ({units} units) filled",
            data={"broker_order_id": fill.order_id},
        )
        self._notify(f"[trade {trade.id}] {data.side.value.upper()} {data.lot_size} @ {entry_price}")
        return trade

    async def close_trade(self, trade_id: int) -> Trade:
        """Close a trade at market on user request.

        Closing a trade that is already closed returns it unchanged, so a manual
        close racing a monitor-driven TP2/SL is harmless.
        """
        trade = self.store.get_trade(trade_id)
        if trade.is_closed:
            logger.info(f"[trade {trade_id}] Close requested on closed trade, nothing to do")
            return trade

        result = await self.broker.close_position(
            trade.instrument, trade.side, lifecycle.lots_to_units(trade.lot_size)
        )
        if not result.success:
            raise BrokerRejectedError("Failed to close position with broker")

        price = result.closed_price
        if not price:
            quote = await self.broker.get_current_price(trade.instrument)
            price = quote.exit_price(trade.side)

        # The monitor may have committed a TP1 or a close while the broker call ran
        trade = self.store.get_trade(trade_id)
        if trade.is_closed:
            logger.info(f"[trade {trade_id}] Closed by the monitor during manual close")
            return trade

        plan = lifecycle.plan_final_close(trade, price)
        try:
            closed = self.store.close_trade(
                trade_id,
                close_time=datetime.now(timezone.utc),
                realized_pl=plan.total_realized_pl,
                reason=CloseReason.MANUAL,
                current_price=price,
            )
        except StateConflictError:
            return self.store.get_trade(trade_id)

        self.store.credit_balance(trade.owner_id, plan.leg_pl)
        message = f"Closed manually at {price} with total P&L {plan.total_realized_pl}"
        self.store.record_event(
            trade_id, "success", "manual_close", price=price,
            price_source=PriceSource.SIMULATED.value if result.simulated else PriceSource.LIVE.value,
            message=message,
            data={"leg_pl": str(plan.leg_pl)},
        )
        logger.info(f"[trade {trade_id}] {message}")
        self._notify(f"[trade {trade_id}] MANUAL | {message}")
        return closed

    async def get_account(self) -> Account:
        """Stored account, refreshed from the broker when a live summary is available."""
        self.store.ensure_account(self.owner_id)
        account = await sync_account(self.store, self.broker, self.owner_id)
        return account or self.store.ensure_account(self.owner_id)

    def _notify(self, message: str):
        if self.notifier is None:
            return
        try:
            self.notifier(message)
        except Exception as e:
            logger.warning(f"Notification failed: {e}")
