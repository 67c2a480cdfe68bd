"""Application configuration using pydantic-settings.

Every chain endpoint and credential defaults to empty so that a missing
value is reported as a ConfigurationError naming the environment variable,
instead of silently falling back to a public endpoint.
"""

from functools import lru_cache
from typing import Optional, Union

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from chainsweep.chains import ChainKind
from chainsweep.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/chainsweep.db",
        description="Database connection URL (UTXO reservations and audit log)",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    http_timeout: float = Field(default=30.0, description="Timeout for outbound RPC calls (s)")

    # ======================
    # EVM
    # ======================
    ethereum_rpc_url: str = Field(default="", description="Ethereum mainnet JSON-RPC URL")
    sepolia_rpc_url: str = Field(default="", description="Sepolia JSON-RPC URL")
    polygon_rpc_url: str = Field(default="", description="Polygon JSON-RPC URL")
    arbitrum_rpc_url: str = Field(default="", description="Arbitrum One JSON-RPC URL")

    # ======================
    # Bitcoin
    # ======================
    bitcoin_api_url: str = Field(default="", description="Esplora/Blockstream REST base URL")
    bitcoin_network: str = Field(default="mainnet", description="UTXO ledger network (mainnet/testnet)")

    # ======================
    # Tron
    # ======================
    tron_rpc_url: str = Field(default="", description="TronGrid base URL")
    tron_api_key: Optional[str] = Field(default=None, description="TronGrid API key (optional)")

    # ======================
    # Cardano
    # ======================
    cardano_blockfrost_url: str = Field(default="", description="Blockfrost base URL")
    cardano_blockfrost_project_id: str = Field(default="", description="Blockfrost project_id")

    # ======================
    # Ripple
    # ======================
    ripple_rpc_url: str = Field(default="", description="rippled JSON-RPC URL")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def require(self, field_name: str, chain: Optional[Union[ChainKind, str]] = None) -> str:
        """Return a configured value or raise ConfigurationError naming its env var."""
        value = getattr(self, field_name, None)
        if not value:
            raise ConfigurationError(chain, field_name.upper())
        return value

    def get_evm_rpc_url(self, network: str) -> str:
        """Get the JSON-RPC URL for an EVM network."""
        field_name = f"{network.lower()}_rpc_url"
        if field_name not in type(self).model_fields:
            raise ConfigurationError(ChainKind.EVM, field_name.upper())
        return self.require(field_name, ChainKind.EVM)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""

        def _state(value: Optional[str]) -> str:
            # Node URLs often embed API keys in the path
            return "(set)" if value else "(not set)"

        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "http_timeout": self.http_timeout,
            "chains": {
                "evm": {
                    "ethereum": _state(self.ethereum_rpc_url),
                    "sepolia": _state(self.sepolia_rpc_url),
                    "polygon": _state(self.polygon_rpc_url),
                    "arbitrum": _state(self.arbitrum_rpc_url),
                },
                "btc": {"api": _state(self.bitcoin_api_url), "network": self.bitcoin_network},
                "trc": {
                    "rpc": _state(self.tron_rpc_url),
                    "api_key": "***" if self.tron_api_key else "(not set)",
                },
                "ada": {
                    "api": _state(self.cardano_blockfrost_url),
                    "project_id": "***" if self.cardano_blockfrost_project_id else "(not set)",
                },
                "xrp": {"rpc": _state(self.ripple_rpc_url)},
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
