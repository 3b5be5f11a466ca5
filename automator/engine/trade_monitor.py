"""Trade monitor: the recurring loop that manages every open trade.

Each tick loads the owner's active trades and values them one at a time, then
checks TP1 (partial close and breakeven stop), then TP2 or stop-loss. Ticks
never overlap. A failed broker action leaves the stored trade untouched, so the
trigger is retried on the next tick.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from automator.engine.account_sync import sync_account
from automator.errors import BrokerError, BrokerRejectedError, StateConflictError, TradeNotFoundError
from automator.models.trade import CloseReason, Trade, TradeStatus
from automator.services import lifecycle
from automator.services.market_data import Quote
from automator.services.trade_store import TradeStore

logger = logging.getLogger(__name__)

MONITOR_JOB_ID = "trade_monitor"
ACCOUNT_SYNC_JOB_ID = "account_sync"


@dataclass
class TickReport:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    evaluated: int = 0
    transitions: list[str] = field(default_factory=list)  # "<trade_id>:<action>"
    errors: list[str] = field(default_factory=list)
    skipped: bool = False


@dataclass
class PendingPartial:
    """A TP1 partial closed at the broker whose stop-loss change then failed."""
    units: int
    close_price: Decimal


class TradeMonitor:
    """Drives the trade lifecycle for one owner on a fixed interval."""

    def __init__(
        self,
        store: TradeStore,
        broker,
        owner_id: str,
        interval_seconds: float = 5.0,
        account_sync_seconds: float = 60.0,
        trigger_on_simulated_quotes: bool = True,
        notifier: Callable[[str], None] | None = None,
    ):
        self.store = store
        self.broker = broker
        self.owner_id = owner_id
        self.interval_seconds = interval_seconds
        self.account_sync_seconds = account_sync_seconds
        self.trigger_on_simulated_quotes = trigger_on_simulated_quotes
        self.notifier = notifier
        self.last_tick: TickReport | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._running = False
        self._lock = asyncio.Lock()

    # -----------------------------------------------------------------------
    # Scheduling
    # -----------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Schedule the monitor. Starting a running monitor does nothing."""
        if self._running:
            return

        self._running = True
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self._scheduled_tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=MONITOR_JOB_ID,
            name="Trade monitor",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if self.account_sync_seconds > 0:
            self._scheduler.add_job(
                self._scheduled_account_sync,
                trigger=IntervalTrigger(seconds=self.account_sync_seconds),
                id=ACCOUNT_SYNC_JOB_ID,
                name="Account sync",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
        self._scheduler.start()
        logger.info(f"Starting trade monitoring every {self.interval_seconds}s for {self.owner_id}")

    def stop(self):
        """Cancel the jobs. No tick starts after this returns."""
        if not self._running:
            return
        self._running = False
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        logger.info("Stopped trade monitoring")

    def status(self) -> dict:
        jobs = self._scheduler.get_jobs() if self._scheduler else []
        return {
            "running": self._running,
            "owner_id": self.owner_id,
            "interval_seconds": self.interval_seconds,
            "jobs": [
                {
                    "id": j.id,
                    "name": j.name,
                    "next_run": str(j.next_run_time) if j.next_run_time else None,
                }
                for j in jobs
            ],
            "last_tick": asdict(self.last_tick) if self.last_tick else None,
        }

    async def _scheduled_tick(self):
        if not self._running:
            return
        await self.run_tick()

    async def _scheduled_account_sync(self):
        if not self._running:
            return
        try:
            await sync_account(self.store, self.broker, self.owner_id)
        except Exception as e:
            logger.error(f"Account sync error: {e}", exc_info=True)

    # -----------------------------------------------------------------------
    # Tick
    # -----------------------------------------------------------------------

    async def run_tick(self) -> TickReport:
        """Run one pass over the active trades, skipping if one is in flight."""
        if self._lock.locked():
            logger.warning("Skipping overlapping monitor tick")
            return TickReport(skipped=True)

        async with self._lock:
            report = await self._run_tick_once()
        self.last_tick = report
        return report

    async def _run_tick_once(self) -> TickReport:
        report = TickReport()
        try:
            trades = self.store.get_active_trades(self.owner_id)
        except Exception as e:
            logger.error(f"Error loading active trades: {e}", exc_info=True)
            report.errors.append(f"load: {e}")
            report.finished_at = datetime.now(timezone.utc)
            return report

        for trade in trades:
            report.evaluated += 1
            try:
                action = await self.evaluate_trade(trade)
                if action:
                    report.transitions.append(f"{trade.id}:{action}")
            except Exception as e:
                logger.error(f"[trade {trade.id}] Error checking trade: {e}", exc_info=True)
                report.errors.append(f"{trade.id}: {e}")
                self._record(trade.id, "error", "evaluation_error", message=str(e))
                self._notify(f"[trade {trade.id}] ERROR: {e}")

        self._roll_up_account()
        report.finished_at = datetime.now(timezone.utc)
        return report

    async def evaluate_trade(self, trade: Trade) -> str | None:
        """Value one trade and fire at most one trigger.

        Returns the action taken ("tp1", "tp2", "stop_loss") or None.
        """
        if trade.is_closed:
            return None

        quote = await self.broker.get_current_price(trade.instrument)
        price = quote.exit_price(trade.side)

        # Valuation lands every tick, trigger or not
        try:
            trade = self.store.update_trade(
                trade.id,
                current_price=price,
                unrealized_pl=lifecycle.unrealized_pl(trade, price),
                price_source=quote.source,
            )
        except StateConflictError:
            logger.info(f"[trade {trade.id}] Already closed, skipping")
            return None
        except TradeNotFoundError:
            logger.warning(f"[trade {trade.id}] No longer in store, skipping")
            return None

        if not trade.tp1_hit:
            pending = self._pending_partial(trade.id)
            if pending is not None:
                # The broker already holds the reduced size; finish TP1 at any price
                return await self._handle_tp1(trade, price, quote, pending)
            if lifecycle.tp1_triggered(trade, price):
                if not self._may_trigger(trade, quote, "TP1"):
                    return None
                # No cascade: TP2/SL against the reduced size wait for the next tick
                return await self._handle_tp1(trade, price, quote)
        elif lifecycle.tp2_triggered(trade, price):
            if not self._may_trigger(trade, quote, "TP2"):
                return None
            return await self._handle_final_close(trade, price, quote, CloseReason.TP2)

        if lifecycle.sl_triggered(trade, price):
            if not self._may_trigger(trade, quote, "SL"):
                return None
            return await self._handle_final_close(trade, price, quote, CloseReason.STOP_LOSS)

        return None

    # -----------------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------------

    async def _handle_tp1(
        self,
        trade: Trade,
        price: Decimal,
        quote: Quote,
        pending: PendingPartial | None = None,
    ) -> str | None:
        """Partial close plus breakeven stop, committed only once both succeed.

        `pending` is a partial an earlier attempt already closed at the broker;
        only the stop-loss change is retried and the leg is booked at the
        price that partial closed at.
        """
        leg_price = pending.close_price if pending else price
        plan = lifecycle.plan_tp1(trade, leg_price)
        if plan.full_close:
            return await self._handle_final_close(trade, price, quote, CloseReason.TP1)

        closed_units = None
        try:
            if pending:
                closed_units = pending.units
                logger.info(
                    f"[trade {trade.id}] TP1 partial of {closed_units} units already closed at "
                    f"{leg_price}, retrying stop-loss change"
                )
            else:
                logger.info(f"[trade {trade.id}] TP1 hit at price {price}")
                await self._close_at_broker(trade, plan.close_units)
                closed_units = plan.close_units
            if trade.broker_order_id:
                moved = await self.broker.modify_stop_loss(trade.broker_order_id, trade.entry_price)
                if not moved:
                    raise BrokerRejectedError("stop-loss change not acknowledged")
        except BrokerError as e:
            logger.error(f"[trade {trade.id}] TP1 broker action failed, retrying next tick: {e}")
            data = None
            if closed_units:
                data = {"closed_units": closed_units, "close_price": str(leg_price)}
            self._record(trade.id, "error", "tp1_failed", price, quote, message=str(e), data=data)
            return None

        remaining_pl = lifecycle.compute_pnl(trade.side, trade.entry_price, price, plan.remaining_lots)
        try:
            self.store.update_trade(
                trade.id,
                tp1_hit=True,
                sl_moved_to_breakeven=True,
                status=TradeStatus.TP1_HIT,
                sl=trade.entry_price,
                lot_size=plan.remaining_lots,
                realized_pl=lifecycle.to_money(trade.realized_pl + plan.leg_pl),
                unrealized_pl=lifecycle.to_money(remaining_pl),
            )
        except StateConflictError:
            logger.info(f"[trade {trade.id}] Closed during TP1 handling, nothing to commit")
            return None

        self.store.credit_balance(trade.owner_id, plan.leg_pl)
        message = (
            f"Partially closed {trade.partial_close_percent}% ({plan.close_lots} lots) at {leg_price}, "
            f"P&L {plan.leg_pl}, SL moved to breakeven {trade.entry_price}"
        )
        logger.info(f"[trade {trade.id}] {message}")
        self._record(
            trade.id, "success", "tp1", leg_price, quote, message=message,
            data={
                "close_units": plan.close_units,
                "remaining_lots": str(plan.remaining_lots),
                "leg_pl": str(plan.leg_pl),
            },
        )
        self._notify(f"[trade {trade.id}] TP1 | {message}")
        return "tp1"

    async def _handle_final_close(
        self, trade: Trade, price: Decimal, quote: Quote, reason: CloseReason
    ) -> str | None:
        plan = lifecycle.plan_final_close(trade, price)
        logger.info(f"[trade {trade.id}] {reason.value} hit at price {price}, closing trade")
        try:
            # Explicit units: other trades may hold the same side of the position
            await self._close_at_broker(trade, lifecycle.lots_to_units(trade.lot_size))
        except BrokerError as e:
            logger.error(f"[trade {trade.id}] {reason.value} close failed, retrying next tick: {e}")
            self._record(trade.id, "error", f"{reason.value}_failed", price, quote, message=str(e))
            return None

        fields = {"current_price": price}
        if reason == CloseReason.TP1:
            # Whole position went at TP1; record it as hit with the stop at entry
            fields.update(tp1_hit=True, sl=trade.entry_price)
        try:
            self.store.close_trade(
                trade.id,
                close_time=datetime.now(timezone.utc),
                realized_pl=plan.total_realized_pl,
                reason=reason,
                **fields,
            )
        except StateConflictError:
            logger.info(f"[trade {trade.id}] Already closed elsewhere, nothing to commit")
            return None

        self.store.credit_balance(trade.owner_id, plan.leg_pl)
        message = f"Closed at {reason.value} {price} with total P&L {plan.total_realized_pl}"
        logger.info(f"[trade {trade.id}] {message}")
        self._record(
            trade.id, "success", reason.value, price, quote, message=message,
            data={"leg_pl": str(plan.leg_pl), "total_realized_pl": str(plan.total_realized_pl)},
        )
        self._notify(f"[trade {trade.id}] {reason.value.upper()} | {message}")
        return reason.value

    async def _close_at_broker(self, trade: Trade, units: int):
        result = await self.broker.close_position(trade.instrument, trade.side, units)
        if not result.success:
            raise BrokerRejectedError("broker reported close as unsuccessful")
        return result

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _may_trigger(self, trade: Trade, quote: Quote, label: str) -> bool:
        """Decide whether a trigger may act on this quote's provenance."""
        if not quote.simulated or getattr(self.broker, "mock_mode", False):
            return True
        if self.trigger_on_simulated_quotes:
            logger.warning(f"[trade {trade.id}] {label} firing on a SIMULATED quote while the broker is live")
            return True
        logger.warning(f"[trade {trade.id}] {label} skipped: quote is simulated")
        return False

    def _pending_partial(self, trade_id: int) -> PendingPartial | None:
        """The partial left by the latest failed TP1 attempt, if it got that far."""
        for event in reversed(self.store.list_events(trade_id)):
            if event.action != "tp1_failed":
                continue
            data = event.data or {}
            if not data.get("closed_units"):
                return None
            return PendingPartial(
                units=int(data["closed_units"]),
                close_price=Decimal(data["close_price"]),
            )
        return None

    def _roll_up_account(self):
        try:
            active = self.store.get_active_trades(self.owner_id)
            total = sum((t.unrealized_pl for t in active), Decimal("0"))
            self.store.update_account(self.owner_id, unrealized_pl=lifecycle.to_money(total))
        except Exception as e:
            logger.error(f"Account roll-up failed: {e}", exc_info=True)

    def _record(
        self,
        trade_id: int,
        status: str,
        action: str,
        price: Decimal | None = None,
        quote: Quote | None = None,
        message: str | None = None,
        data: dict | None = None,
    ):
        try:
            self.store.record_event(
                trade_id,
                status,
                action,
                price=price,
                price_source=quote.source.value if quote else None,
                message=message,
                data=data,
            )
        except Exception as e:
            logger.error(f"[trade {trade_id}] Failed to record {action} event: {e}")

    def _notify(self, message: str):
        if self.notifier is None:
            return
        try:
            self.notifier(message)
        except Exception as e:
            logger.warning(f"Notification failed: {e}")
