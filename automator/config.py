"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite://"  # in-memory; trades live for the process lifetime
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173"]  # Vite dev server

    # Broker (OANDA v20). Missing key or account id puts the client in mock mode.
    oanda_api_key: str = ""
    oanda_account_id: str = ""
    oanda_base_url: str = "https://api-fxpractice.oanda.com"
    oanda_timeout_seconds: float = 10.0

    # Trading
    instrument: str = "XAU_USD"
    owner_id: str = "default-user"
    starting_balance: str = "10000.00"

    # Monitor
    monitor_interval_seconds: float = 5.0
    account_sync_interval_seconds: float = 60.0
    trigger_on_simulated_quotes: bool = True
    simulated_seed: int | None = None

    # Telegram
    telegram_bot_token: str = ""
    telegram_chat_ids: list[int] = []

    model_config = {"env_prefix": "TA_", "env_file": ".env"}


settings = Settings()
