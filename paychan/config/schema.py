"""Configuration schema using Pydantic.

Static, construction-time settings for one plugin instance. Environment
variables prefixed with PAYCHAN_ override file values.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PROVIDER_URI = "http://localhost:8545"
DEFAULT_DB = "paychan_db"
DEFAULT_MINIMUM_CHANNEL_AMOUNT = 100


class PluginConfig(BaseSettings):
    """Root configuration for a paychan plugin instance."""
    port: int | None = None  # Listen port; None means outbound-only
    host: str = "0.0.0.0"
    server: str | None = None  # Peer base URL; None means standalone
    provider: str = DEFAULT_PROVIDER_URI  # Chain JSON-RPC endpoint
    account: str | None = None  # Auto-discovered from the provider if unset
    db: str = DEFAULT_DB  # Channel state storage location
    minimum_channel_amount: int = Field(default=DEFAULT_MINIMUM_CHANNEL_AMOUNT, ge=0)
    request_timeout: float = Field(default=30.0, gt=0)  # Seconds, outbound HTTP
    ledger_timeout: float = Field(default=60.0, gt=0)  # Seconds, per ledger call

    model_config = SettingsConfigDict(
        env_prefix="PAYCHAN_",
        env_nested_delimiter="__",
    )

    @field_validator("server")
    @classmethod
    def _strip_trailing_slash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().rstrip("/")
        return value or None

    @field_validator("port")
    @classmethod
    def _check_port(cls, value: int | None) -> int | None:
        # 0 binds an ephemeral port
        if value is not None and not (0 <= value < 65536):
            raise ValueError(f"port out of range: {value}")
        return value

    @property
    def gateway(self) -> str | None:
        """Peer money endpoint, where payments for our channels are routed."""
        if not self.server:
            return None
        return f"{self.server}/money"

    @property
    def is_receiver(self) -> bool:
        return self.port is not None
