"""Telegram bot for trade notifications and read-only status commands."""

import asyncio
import logging
import threading
from typing import Callable, Optional

from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes

logger = logging.getLogger(__name__)


class TelegramBot:
    """Telegram bot running in a background thread with its own event loop."""

    def __init__(
        self,
        token: str,
        chat_ids: list[int],
        store,
        monitor,
        owner_id: str,
        app_loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.token = token
        self.chat_ids = set(chat_ids)
        self.store = store
        self.monitor = monitor
        self.owner_id = owner_id
        # Loop that owns the store; command reads are run there, not on the bot thread
        self.app_loop = app_loop
        self._app: Optional[Application] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _is_authorized(self, user_id: int) -> bool:
        return user_id in self.chat_ids

    async def _check_auth(self, update: Update) -> bool:
        if not update.effective_user or not self._is_authorized(update.effective_user.id):
            if update.message:
                await update.message.reply_text("Unauthorized.")
            return False
        return True

    def status_text(self) -> str:
        status = self.monitor.status()
        active = self.store.get_active_trades(self.owner_id)
        account = self.store.get_account(self.owner_id)
        monitor_str = "running" if status["running"] else "stopped"
        lines = [
            f"Monitor: {monitor_str}",
            f"Active trades: {len(active)}",
        ]
        if account:
            lines.append(f"Balance: {account.balance} | Unrealized: {account.unrealized_pl}")
        return "\n".join(lines)

    def trades_text(self) -> str:
        active = self.store.get_active_trades(self.owner_id)
        if not active:
            return "No active trades."
        return "\n".join(
            f"#{t.id} {t.side.value.upper()} {t.lot_size} @ {t.entry_price} | "
            f"{t.status.value} | now {t.current_price} | P&L {t.unrealized_pl} / {t.realized_pl}"
            for t in active
        )

    async def _on_app_loop(self, fn: Callable[[], str]) -> str:
        """Run `fn` on the app loop so store access stays on one thread."""
        if self.app_loop is None or self.app_loop is asyncio.get_running_loop():
            return fn()

        async def _call():
            return fn()

        future = asyncio.run_coroutine_threadsafe(_call(), self.app_loop)
        return await asyncio.wrap_future(future)

    async def _cmd_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return
        await update.message.reply_text(await self._on_app_loop(self.status_text))

    async def _cmd_trades(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return
        await update.message.reply_text(await self._on_app_loop(self.trades_text))

    async def send_notification(self, message: str):
        """Send a message to all whitelisted chat IDs."""
        if not self._app or not self._app.bot:
            return
        for chat_id in self.chat_ids:
            try:
                await self._app.bot.send_message(chat_id=chat_id, text=message)
            except Exception as e:
                logger.warning(f"Failed to send Telegram notification to {chat_id}: {e}")

    def notify(self, message: str):
        """Fire-and-forget send, callable from any thread or loop."""
        if self._loop is None:
            return
        asyncio.run_coroutine_threadsafe(self.send_notification(message), self._loop)

    def _run_bot(self):
        """Run the bot in a background thread with its own event loop."""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        self._app = Application.builder().token(self.token).build()
        self._app.add_handler(CommandHandler("status", self._cmd_status))
        self._app.add_handler(CommandHandler("trades", self._cmd_trades))

        logger.info("Telegram bot starting...")
        self._loop.run_until_complete(self._app.initialize())
        self._loop.run_until_complete(self._app.start())
        self._loop.run_until_complete(self._app.updater.start_polling())
        self._loop.run_forever()

    def start(self):
        self._thread = threading.Thread(target=self._run_bot, daemon=True)
        self._thread.start()

    def stop(self):
        if self._loop and self._app:
            async def _shutdown():
                await self._app.updater.stop()
                await self._app.stop()
                await self._app.shutdown()

            asyncio.run_coroutine_threadsafe(_shutdown(), self._loop).result(timeout=10)
            self._loop.call_soon_threadsafe(self._loop.stop)
