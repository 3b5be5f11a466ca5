"""SQLModel-backed CRUD for trades, accounts and trade events.

Every method runs in its own session and commits once, so a multi-field
update is visible either completely or not at all. Closed trades are frozen:
any lifecycle write against one raises StateConflictError.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from automator.errors import StateConflictError, TradeNotFoundError
from automator.models.account import Account
from automator.models.trade import CloseReason, Trade, TradeStatus
from automator.models.trade_event import TradeEvent
from automator.utils.constants import DEFAULT_BALANCE

logger = logging.getLogger(__name__)

# Columns fixed at creation; update_trade refuses to touch them
_IMMUTABLE_FIELDS = {"id", "owner_id", "instrument", "side", "entry_price", "open_time"}


class TradeStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    # -----------------------------------------------------------------------
    # Trades
    # -----------------------------------------------------------------------

    def create_trade(self, trade: Trade) -> Trade:
        with self._session() as session:
            session.add(trade)
            session.commit()
            session.refresh(trade)
        logger.info(f"[trade {trade.id}] Created {trade.side.value} {trade.lot_size} @ {trade.entry_price}")
        return trade

    def get_trade(self, trade_id: int) -> Trade:
        with self._session() as session:
            trade = session.get(Trade, trade_id)
        if trade is None:
            raise TradeNotFoundError(trade_id)
        return trade

    def list_trades(self, owner_id: str, limit: int = 100, offset: int = 0) -> list[Trade]:
        stmt = (
            select(Trade)
            .where(Trade.owner_id == owner_id)
            .order_by(Trade.open_time.desc(), Trade.id.desc())
            .offset(offset)
            .limit(limit)
        )
        with self._session() as session:
            return list(session.exec(stmt).all())

    def get_active_trades(self, owner_id: str) -> list[Trade]:
        """Trades of `owner_id` whose status is not closed, oldest first."""
        stmt = (
            select(Trade)
            .where(Trade.owner_id == owner_id, Trade.status != TradeStatus.CLOSED)
            .order_by(Trade.id)
        )
        with self._session() as session:
            return list(session.exec(stmt).all())

    def update_trade(self, trade_id: int, **fields: Any) -> Trade:
        """Apply `fields` to an open trade in one commit."""
        bad = _IMMUTABLE_FIELDS.intersection(fields)
        if bad:
            raise ValueError(f"Cannot update immutable trade fields: {sorted(bad)}")

        with self._session() as session:
            trade = session.get(Trade, trade_id)
            if trade is None:
                raise TradeNotFoundError(trade_id)
            if trade.status == TradeStatus.CLOSED:
                raise StateConflictError(trade_id, trade.status.value)
            for name, value in fields.items():
                if not hasattr(trade, name):
                    raise ValueError(f"Unknown trade field: {name}")
                setattr(trade, name, value)
            session.add(trade)
            session.commit()
            session.refresh(trade)
        return trade

    def close_trade(
        self,
        trade_id: int,
        close_time: datetime,
        realized_pl: Decimal,
        reason: CloseReason,
        **fields: Any,
    ) -> Trade:
        """Mark a trade closed together with any final field values.

        Raises StateConflictError if the trade is already closed; callers on the
        close path treat that as a successful no-op.
        """
        with self._session() as session:
            trade = session.get(Trade, trade_id)
            if trade is None:
                raise TradeNotFoundError(trade_id)
            if trade.status == TradeStatus.CLOSED:
                raise StateConflictError(trade_id, trade.status.value)
            for name, value in fields.items():
                setattr(trade, name, value)
            trade.status = TradeStatus.CLOSED
            trade.close_time = close_time
            trade.realized_pl = realized_pl
            trade.close_reason = reason
            trade.unrealized_pl = Decimal("0")
            session.add(trade)
            session.commit()
            session.refresh(trade)
        logger.info(f"[trade {trade_id}] Closed ({reason.value}) realized={realized_pl}")
        return trade

    # -----------------------------------------------------------------------
    # Accounts
    # -----------------------------------------------------------------------

    def get_account(self, owner_id: str) -> Account | None:
        with self._session() as session:
            return session.exec(select(Account).where(Account.owner_id == owner_id)).first()

    def ensure_account(self, owner_id: str, balance: Decimal = DEFAULT_BALANCE) -> Account:
        """Return the owner's account, creating it with `balance` if missing."""
        with self._session() as session:
            account = session.exec(select(Account).where(Account.owner_id == owner_id)).first()
            if account is None:
                account = Account(owner_id=owner_id, balance=Decimal(balance))
                session.add(account)
                session.commit()
                session.refresh(account)
                logger.info(f"Created account for {owner_id} with balance {account.balance}")
            return account

    def update_account(self, owner_id: str, **fields: Any) -> Account | None:
        with self._session() as session:
            account = session.exec(select(Account).where(Account.owner_id == owner_id)).first()
            if account is None:
                return None
            for name, value in fields.items():
                setattr(account, name, value)
            account.last_updated = datetime.now(timezone.utc)
            session.add(account)
            session.commit()
            session.refresh(account)
            return account

    def credit_balance(self, owner_id: str, amount: Decimal) -> Account | None:
        """Add a realized P&L leg to the owner's balance."""
        with self._session() as session:
            account = session.exec(select(Account).where(Account.owner_id == owner_id)).first()
            if account is None:
                logger.warning(f"No account for {owner_id}; realized {amount} not credited")
                return None
            account.balance = account.balance + amount
            account.last_updated = datetime.now(timezone.utc)
            session.add(account)
            session.commit()
            session.refresh(account)
            return account

    # -----------------------------------------------------------------------
    # Events
    # -----------------------------------------------------------------------

    def record_event(
        self,
        trade_id: int,
        status: str,
        action: str,
        price: Decimal | None = None,
        price_source: str | None = None,
        message: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> TradeEvent:
        event = TradeEvent(
            trade_id=trade_id,
            status=status,
            action=action,
            price=price,
            price_source=price_source,
            message=message,
            data=data,
        )
        with self._session() as session:
            session.add(event)
            session.commit()
            session.refresh(event)
        return event

    def list_events(self, trade_id: int) -> list[TradeEvent]:
        stmt = select(TradeEvent).where(TradeEvent.trade_id == trade_id).order_by(TradeEvent.id)
        with self._session() as session:
            return list(session.exec(stmt).all())
