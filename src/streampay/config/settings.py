"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``STREAMPAY_``, nested via ``__``)
2. YAML config file (``--config path`` or ``STREAMPAY_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class ServerConfig(BaseSettings):
    """HTTP server settings."""

    model_config = SettingsConfigDict(
        env_prefix="STREAMPAY_SERVER__",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3004


class ChainConfig(BaseSettings):
    """Chain JSON-RPC and stream contract settings."""

    model_config = SettingsConfigDict(
        env_prefix="STREAMPAY_CHAIN__",
        case_sensitive=False,
    )

    rpc_url: str = "http://localhost:8545"
    network_id: int = 1
    average_block_time: Decimal = Field(
        default=Decimal(14),
        gt=0,
        description="Average seconds per block used for block estimation",
    )
    account: str = Field(default="", description="Sender account managed by the node")
    stream_contract: str = Field(default="", description="Stream contract address")
    receipt_poll_interval: float = 2.0
    receipt_timeout: float = Field(
        default=600.0,
        gt=0,
        description="Seconds to wait for a createStream receipt before failing",
    )


class TokenConfig(BaseSettings):
    """Token directory: symbols, addresses and the accepted allowlist."""

    model_config = SettingsConfigDict(
        env_prefix="STREAMPAY_TOKENS__",
        case_sensitive=False,
    )

    addresses: dict[str, str] = Field(
        default_factory=lambda: {"DAI": "0x6B175474E89094C44Da98b954EedeAC495271d0F"},
        description="Symbol to token contract address",
    )
    accepted: list[str] = Field(default_factory=lambda: ["DAI"])
    default_symbol: str = "DAI"
    native_symbol: str = "ETH"


class GasConfig(BaseSettings):
    """Gas price lookup settings (wei)."""

    model_config = SettingsConfigDict(
        env_prefix="STREAMPAY_GAS__",
        case_sensitive=False,
    )

    default_price: int = 8_000_000_000
    premium: int = 1_000_000_000


class DiscoveryConfig(BaseSettings):
    """Stream indexer (GraphQL) settings."""

    model_config = SettingsConfigDict(
        env_prefix="STREAMPAY_DISCOVERY__",
        case_sensitive=False,
    )

    url: str = "http://localhost:8000/subgraphs/name/streams"
    poll_interval: float = 2.0
    timeout: float = 30.0


class DraftConfig(BaseSettings):
    """Draft form settings."""

    model_config = SettingsConfigDict(
        env_prefix="STREAMPAY_DRAFT__",
        case_sensitive=False,
    )

    min_start_margin_minutes: int = Field(
        default=60,
        ge=0,
        description="Minutes added to now for the earliest allowed start time",
    )


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Loads settings from environment variables (``STREAMPAY_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="STREAMPAY_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    version: str = "0.1.0"
    config_path: str = ""

    server: ServerConfig = Field(default_factory=ServerConfig)
    chain: ChainConfig = Field(default_factory=ChainConfig)
    tokens: TokenConfig = Field(default_factory=TokenConfig)
    gas: GasConfig = Field(default_factory=GasConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    draft: DraftConfig = Field(default_factory=DraftConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                merged = {**val, **values[key]}
                values[key] = merged
        return values

    @field_validator("tokens")
    @classmethod
    def _default_token_known(cls, tokens: TokenConfig) -> TokenConfig:
        if tokens.default_symbol not in tokens.addresses:
            msg = f"default token {tokens.default_symbol!r} has no configured address"
            raise ValueError(msg)
        return tokens

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
