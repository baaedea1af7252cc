from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SUPPLYDESK_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )
    coinmarketcap_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "COINMARKETCAP_API_KEY", "SUPPLYDESK_COINMARKETCAP_API_KEY"
        ),
    )
    coingecko_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("COINGECKO_API_KEY", "SUPPLYDESK_COINGECKO_API_KEY"),
    )
    coinmarketcap_base_url: str = "https://pro-api.coinmarketcap.com/v1"
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    timeout_seconds: float = 10.0


class CacheSettings(BaseModel):
    backend: Literal["memory", "redis"] = "memory"
    ttl_seconds: int = 300
    check_period_seconds: int = 60
    key_prefix: str = "supplydesk:"


class LedgerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SUPPLYDESK_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )
    rpc_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ARBITRUM_SEPOLIA_RPC", "SUPPLYDESK_RPC_URL"),
    )
    private_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PRIVATE_KEY", "SUPPLYDESK_PRIVATE_KEY"),
    )
    contract_address: str | None = Field(
        default=None,
        validation_alias=AliasChoices("CONTRACT_ADDRESS", "SUPPLYDESK_CONTRACT_ADDRESS"),
    )
    confirmation_timeout_seconds: float = 300.0
    explorer_tx_url: str = "https://sepolia.arbiscan.io/tx/"

    @property
    def is_configured(self) -> bool:
        return bool(self.rpc_url and self.private_key and self.contract_address)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SUPPLYDESK_",
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("REDIS_URL", "SUPPLYDESK_REDIS_URL"),
    )
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "SUPPLYDESK_LOG_LEVEL"),
    )
    snapshot_limit: int = 100
    publish_interval_seconds: float = 30 * 60
    publisher_enabled: bool = True

    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)


settings = Settings()
