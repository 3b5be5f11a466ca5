"""OANDA v20 REST client for the XAU_USD position.

Read paths (quotes, candles, account summary) never fail the caller: on any
broker failure they fall back to simulated or last-known data, tagged as such.
Mutating paths (orders, closes, stop-loss changes) raise on failure so the
caller can abort its pending state change.
"""

import logging
import time
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation

import httpx

from automator.errors import BrokerError, BrokerRejectedError, BrokerTransportError
from automator.models.trade import PriceSource, Side
from automator.services.market_data import Candle, Quote, SimulatedFeed, parse_candles
from automator.utils.constants import (
    DEFAULT_BALANCE,
    INSTRUMENT,
    MAX_CANDLES,
    Granularity,
)

logger = logging.getLogger(__name__)

PRICE_FORMAT = "{:.3f}"  # XAU_USD display precision on OANDA


@dataclass
class OrderFill:
    order_id: str
    fill_price: Decimal | None = None
    simulated: bool = False


@dataclass
class CloseResult:
    success: bool
    closed_price: Decimal | None = None
    simulated: bool = False


@dataclass
class AccountSummary:
    balance: Decimal
    unrealized_pl: Decimal
    margin_used: Decimal
    live: bool = True  # False when served from the last-known copy


def _fmt_price(price: Decimal) -> str:
    return PRICE_FORMAT.format(Decimal(price))


class OandaClient:
    """Wrapper around the OANDA v20 REST API for one account."""

    def __init__(
        self,
        api_key: str,
        account_id: str,
        base_url: str = "https://api-fxpractice.oanda.com",
        timeout: float = 10.0,
        feed: SimulatedFeed | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.account_id = account_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._feed = feed or SimulatedFeed()
        self._client = http_client
        self._owns_client = http_client is None
        self._mock_mode = not (api_key and account_id)
        self._last_summary = AccountSummary(
            balance=DEFAULT_BALANCE,
            unrealized_pl=Decimal("0.00"),
            margin_used=Decimal("0.00"),
            live=False,
        )
        if self._mock_mode:
            logger.warning(
                "OANDA API credentials not configured; broker client in mock mode, "
                "all market data and fills are simulated"
            )

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def _request(self, method: str, endpoint: str, **kwargs) -> dict:
        if self._mock_mode:
            raise BrokerTransportError("OANDA API key not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept-Datetime-Format": "RFC3339",
        }
        try:
            response = await self._get_client().request(method, endpoint, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise BrokerTransportError(f"OANDA request failed: {e}") from e

        if response.status_code in (401, 403) or response.status_code >= 500:
            raise BrokerTransportError(
                f"OANDA API error: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise BrokerRejectedError(f"OANDA rejected request: {response.status_code} {response.text}")

        try:
            return response.json()
        except ValueError as e:
            raise BrokerTransportError(f"OANDA returned invalid JSON: {e}") from e

    # -----------------------------------------------------------------------
    # Read paths
    # -----------------------------------------------------------------------

    async def get_current_price(self, instrument: str = INSTRUMENT) -> Quote:
        """Current bid/ask, or a simulated quote if the broker is unreachable."""
        if self._mock_mode:
            return self._feed.next_quote()

        try:
            data = await self._request(
                "GET",
                f"/v3/accounts/{self.account_id}/pricing",
                params={"instruments": instrument},
            )
            price = data["prices"][0]
            bid = Decimal(price["bids"][0]["price"])
            ask = Decimal(price["asks"][0]["price"])
        except (BrokerError, KeyError, IndexError, InvalidOperation) as e:
            logger.error(f"Error fetching OANDA price, serving simulated quote: {e}")
            return self._feed.next_quote()

        quote = Quote(bid=bid, ask=ask, spread=ask - bid, source=PriceSource.LIVE)
        self._feed.anchor(quote.mid)
        return quote

    async def get_candles(
        self,
        instrument: str = INSTRUMENT,
        granularity: Granularity | str = Granularity.M1,
        count: int = 500,
    ) -> list[Candle]:
        """OHLCV candles oldest first, or simulated candles on failure."""
        granularity = Granularity(granularity)
        count = max(1, min(int(count), MAX_CANDLES))

        if self._mock_mode:
            return self._feed.candles(granularity, count)

        try:
            data = await self._request(
                "GET",
                f"/v3/accounts/{self.account_id}/instruments/{instrument}/candles",
                params={"granularity": granularity.value, "count": count, "price": "M"},
            )
            return parse_candles(data["candles"])
        except (BrokerError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Error fetching OANDA candles, serving simulated candles: {e}")
            return self._feed.candles(granularity, count)

    async def get_account_summary(self) -> AccountSummary:
        """Balance, unrealized P&L and margin; last-known values on failure."""
        if self._mock_mode:
            return self._last_summary

        try:
            data = await self._request("GET", f"/v3/accounts/{self.account_id}/summary")
            account = data["account"]
            summary = AccountSummary(
                balance=Decimal(account["balance"]),
                unrealized_pl=Decimal(account["unrealizedPL"]),
                margin_used=Decimal(account["marginUsed"]),
            )
        except (BrokerError, KeyError, InvalidOperation) as e:
            logger.error(f"Error fetching OANDA account summary, using last known values: {e}")
            return replace(self._last_summary, live=False)

        self._last_summary = summary
        return summary

    # -----------------------------------------------------------------------
    # Mutating paths
    # -----------------------------------------------------------------------

    async def place_market_order(
        self,
        instrument: str,
        units: int,
        take_profit: Decimal | None = None,
        stop_loss: Decimal | None = None,
    ) -> OrderFill:
        """Place a fill-or-kill market order.

        Args:
            instrument: OANDA instrument name.
            units: Signed size; positive buys, negative sells.
            take_profit: Optional take-profit attached on fill.
            stop_loss: Optional stop-loss attached on fill.

        Raises:
            BrokerTransportError: the broker could not be reached.
            BrokerRejectedError: the order was rejected or cancelled.
        """
        if units == 0:
            raise ValueError("units must be non-zero")

        if self._mock_mode:
            side = Side.BUY if units > 0 else Side.SELL
            quote = self._feed.next_quote()
            order_id = f"sim_{int(time.time() * 1000)}"
            logger.info(
                f"MOCK MARKET order: instrument={instrument}, units={units}, "
                f"tp={take_profit}, sl={stop_loss}, id={order_id}"
            )
            return OrderFill(order_id=order_id, fill_price=quote.entry_price(side), simulated=True)

        order = {
            "type": "MARKET",
            "instrument": instrument,
            "units": str(units),
            "timeInForce": "FOK",
            "positionFill": "DEFAULT",
        }
        if take_profit is not None:
            order["takeProfitOnFill"] = {"price": _fmt_price(take_profit), "timeInForce": "GTC"}
        if stop_loss is not None:
            order["stopLossOnFill"] = {"price": _fmt_price(stop_loss), "timeInForce": "GTC"}

        data = await self._request(
            "POST", f"/v3/accounts/{self.account_id}/orders", json={"order": order}
        )

        fill = data.get("orderFillTransaction")
        if fill is None:
            cancel = data.get("orderCancelTransaction") or {}
            reason = cancel.get("reason", "no fill transaction")
            logger.error(f"Order not filled: {reason}")
            raise BrokerRejectedError(f"Order not filled: {reason}")

        # Stop-loss changes target the opened trade, not the order transaction
        trade_id = (fill.get("tradeOpened") or {}).get("tradeID")
        order_id = trade_id or fill.get("id")
        if not order_id:
            raise BrokerRejectedError("Order fill carried no trade or transaction id")
        fill_price = Decimal(fill["price"]) if fill.get("price") else None
        logger.info(f"Order filled: {order_id} units={units} price={fill_price}")
        return OrderFill(order_id=str(order_id), fill_price=fill_price)

    async def close_position(
        self,
        instrument: str,
        side: Side,
        partial_units: int | None = None,
    ) -> CloseResult:
        """Close the `side` position, fully or `partial_units` of it.

        Raises on failure; never reports a simulated success for a live account.
        """
        units = "ALL" if not partial_units else str(abs(int(partial_units)))
        key = "longUnits" if side == Side.BUY else "shortUnits"

        if self._mock_mode:
            price = self._feed.next_quote().exit_price(side)
            logger.info(f"MOCK close: instrument={instrument}, {key}={units}, price={price}")
            return CloseResult(success=True, closed_price=price, simulated=True)

        data = await self._request(
            "PUT",
            f"/v3/accounts/{self.account_id}/positions/{instrument}/close",
            json={key: units},
        )
        fill = data.get("longOrderFillTransaction") or data.get("shortOrderFillTransaction")
        if fill is None:
            cancel = data.get("longOrderCancelTransaction") or data.get("shortOrderCancelTransaction") or {}
            reason = cancel.get("reason", "no fill transaction")
            logger.error(f"Position close not filled: {reason}")
            raise BrokerRejectedError(f"Position close not filled: {reason}")

        closed_price = Decimal(fill["price"]) if fill.get("price") else None
        logger.info(f"Position closed: {instrument} {key}={units} price={closed_price}")
        return CloseResult(success=True, closed_price=closed_price)

    async def modify_stop_loss(self, trade_id: str, new_price: Decimal) -> bool:
        """Replace the stop-loss on an open broker trade. Raises on failure."""
        if self._mock_mode:
            logger.info(f"MOCK stop-loss change: trade={trade_id}, price={_fmt_price(new_price)}")
            return True

        await self._request(
            "PUT",
            f"/v3/accounts/{self.account_id}/trades/{trade_id}/orders",
            json={"stopLoss": {"price": _fmt_price(new_price), "timeInForce": "GTC"}},
        )
        logger.info(f"Stop-loss for trade {trade_id} moved to {_fmt_price(new_price)}")
        return True

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
