from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    run_address: str = Field(
        default="127.0.0.1:8080",
        validation_alias=AliasChoices("run_address", "RUN_ADDRESS"),
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./pointmart.db",
        validation_alias=AliasChoices("database_url", "DATABASE_URI"),
    )

    # Auth
    jwt_signing_key: str = Field(
        default="change-me",
        validation_alias=AliasChoices("jwt_signing_key", "JWT_SIGNING_KEY"),
    )
    jwt_expiration_hours: int = 24
    password_hash_rounds: int = 12

    # Accrual reconciliation worker
    accrual_worker_enabled: bool = True
    accrual_system_address: str = Field(
        default="http://localhost:8081",
        validation_alias=AliasChoices("accrual_system_address", "ACCRUAL_SYSTEM_ADDRESS"),
    )
    accrual_request_timeout_seconds: float = 5.0
    accrual_poll_interval_seconds: float = 10.0
    accrual_batch_size: int = 50
    accrual_rate_interval_seconds: float = 0.1
    accrual_rate_burst: int = 1
    accrual_rate_limit_cooldown_seconds: float = 60.0
    accrual_backoff_step_seconds: float = 1.0
    accrual_shutdown_timeout_seconds: float = 30.0

    @field_validator("accrual_system_address")
    @classmethod
    def _normalize_accrual_address(cls, value: str) -> str:
        address = value.strip().rstrip("/")
        if address and "://" not in address:
            address = f"http://{address}"
        return address

    @field_validator("password_hash_rounds")
    @classmethod
    def _check_hash_rounds(cls, value: int) -> int:
        if value < 4 or value > 31:
            raise ValueError("password_hash_rounds must be between 4 and 31")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
