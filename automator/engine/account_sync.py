"""Account sync: reconcile the stored account aggregate with the broker.

The monitor credits realized legs and rolls up unrealized P&L between syncs;
a live broker summary then overwrites balance, unrealized P&L and margin with
the broker's own figures. A degraded (last-known) summary never overwrites.
"""

import logging
from decimal import Decimal

from automator.models.account import Account
from automator.services.trade_store import TradeStore

logger = logging.getLogger(__name__)


async def sync_account(store: TradeStore, broker, owner_id: str) -> Account | None:
    """Pull the broker account summary into the owner's stored account."""
    summary = await broker.get_account_summary()
    if not summary.live:
        logger.debug("Account sync: broker summary unavailable, keeping stored figures")
        return store.get_account(owner_id)

    store.ensure_account(owner_id, Decimal(summary.balance))
    account = store.update_account(
        owner_id,
        balance=summary.balance,
        unrealized_pl=summary.unrealized_pl,
        margin_used=summary.margin_used,
    )
    logger.info(
        f"Account sync: balance={summary.balance} unrealized={summary.unrealized_pl} "
        f"margin={summary.margin_used}"
    )
    return account
