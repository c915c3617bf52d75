import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, field_validator


class Settings(BaseModel):
    ALPHA_VANTAGE_API_KEY: str
    ALPHA_VANTAGE_BASE_URL: str = "https://www.alphavantage.co/query"
    QUOTE_CACHE_TTL_SEC: int = 300
    UPSTREAM_TIMEOUT_SEC: float = 5.0
    INTRADAY_INTERVAL: Literal["1min", "5min", "15min", "30min", "60min"] = "5min"

    @field_validator("ALPHA_VANTAGE_API_KEY")
    @classmethod
    def _api_key_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("ALPHA_VANTAGE_API_KEY must not be blank")
        return value

    @field_validator("UPSTREAM_TIMEOUT_SEC")
    @classmethod
    def _timeout_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("UPSTREAM_TIMEOUT_SEC must be positive")
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        raw = {"ALPHA_VANTAGE_API_KEY": os.getenv("ALPHA_VANTAGE_API_KEY")}
        # unset optional values fall back to the field defaults
        for name in (
            "ALPHA_VANTAGE_BASE_URL",
            "QUOTE_CACHE_TTL_SEC",
            "UPSTREAM_TIMEOUT_SEC",
            "INTRADAY_INTERVAL",
        ):
            value = os.getenv(name)
            if value is not None and value.strip():
                raw[name] = value.strip()

        return cls.model_validate(raw)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
