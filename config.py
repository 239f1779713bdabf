"""
Configuration module for the NCG bridge relay.
Loads environment variables and provides application settings.
"""
from decimal import Decimal
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Telegram notifications
    bot_token: str
    # Format: "chat_id" or "chat_id:thread_id" for topics
    notification_chat_id: Optional[str] = None

    # Database Configuration
    database_path: str = "./data/bridge.db"

    # Which monitor feeds the observer
    monitor_mode: Literal["pull", "push"] = "pull"

    # Pull monitor (headless GraphQL)
    graphql_api_endpoint: str = "http://localhost:23061/graphql"
    ncg_vault_address: str = ""
    confirmations: int = 10
    poll_interval_seconds: float = 5.0
    # Used only when no cursor has been stored yet
    start_block_hash: Optional[str] = None

    # Push monitor (webhook indexer)
    event_api_url: str = "http://localhost:8000/"
    contract_address: str = ""
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 4000
    drain_interval_seconds: float = 2.0

    # Exchange policy
    exchange_fee_ratio: Decimal = Decimal("0.01")
    minimum_exchange_amount: Decimal = Decimal("100")
    maximum_exchange_amount: Decimal = Decimal("10000")
    destination_decimals: int = 18

    # Explorer links used in notifications
    explorer_url: str = "https://explorer.libplanet.io/9c-main"
    etherscan_url: str = "https://etherscan.io"

    # Backoff between failed monitor cycles
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 60.0

    # Capability factories, "package.module:callable"
    minter_factory: str = ""
    ncg_transfer_factory: str = ""

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()


# Create data directory if it doesn't exist
def ensure_data_directory():
    """Ensure the data directory exists for the database."""
    settings = get_settings()
    db_path = Path(settings.database_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
