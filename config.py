"""
Runtime configuration

Everything is read from the environment; defaults suit local development.
"""
import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field

MAX_PRODUCTS_PER_PAGE = 50
MAX_TYPES = 3


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


class Settings(BaseModel):
    database_url: Optional[str] = Field(None, description="MongoDB connection string")
    database_name: Optional[str] = Field(None, description="MongoDB database name")
    environment: str = Field("development", description="development, test or production")
    log_level: str = Field("INFO")
    products_per_page: int = Field(2, ge=1, le=MAX_PRODUCTS_PER_PAGE)
    catalog_timeout: float = Field(5.0, gt=0, description="Seconds")
    eligibility_timeout: float = Field(10.0, gt=0, description="Seconds")
    review_timeout: float = Field(15.0, gt=0, description="Seconds")
    favorites_timeout: float = Field(5.0, gt=0, description="Seconds")
    checkout_timeout: float = Field(15.0, gt=0, description="Seconds")
    review_write_retries: int = Field(5, ge=1)
    tax_rate: float = Field(0.08, ge=0)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    per_page = min(MAX_PRODUCTS_PER_PAGE, max(1, _int_env("PRODUCTS_PER_PAGE", 2)))
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        database_name=os.getenv("DATABASE_NAME"),
        environment=os.getenv("APP_ENV", "development"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        products_per_page=per_page,
        catalog_timeout=_float_env("CATALOG_TIMEOUT", 5.0),
        eligibility_timeout=_float_env("ELIGIBILITY_TIMEOUT", 10.0),
        review_timeout=_float_env("REVIEW_TIMEOUT", 15.0),
        favorites_timeout=_float_env("FAVORITES_TIMEOUT", 5.0),
        checkout_timeout=_float_env("CHECKOUT_TIMEOUT", 15.0),
        review_write_retries=_int_env("REVIEW_WRITE_RETRIES", 5),
        tax_rate=_float_env("TAX_RATE", 0.08),
    )
