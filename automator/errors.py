"""Error taxonomy shared by the broker client, store and services."""


class BrokerError(Exception):
    """Base class for failures talking to the broker."""


class BrokerTransportError(BrokerError):
    """Network, auth or HTTP-level failure reaching the broker."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BrokerRejectedError(BrokerError):
    """The broker answered but refused or cancelled the request."""


class TradeNotFoundError(LookupError):
    def __init__(self, trade_id: int):
        super().__init__(f"Trade {trade_id} not found")
        self.trade_id = trade_id


class StateConflictError(Exception):
    """A lifecycle mutation was requested on a trade that is already closed."""

    def __init__(self, trade_id: int, status: str):
        super().__init__(f"Trade {trade_id} is {status}")
        self.trade_id = trade_id
        self.status = status
