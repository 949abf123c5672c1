from __future__ import annotations
import logging
from typing import Literal

from pydantic_settings import BaseSettings
from pydantic import Field
from urllib.parse import quote_plus, urlparse

logger = logging.getLogger("rental-pricing-api")

DEFAULT_SQLITE_URL = "sqlite:///./rental_pricing.db"


class Settings(BaseSettings):
    # Prefer a full DATABASE_URL; or supply PG* parts and we'll build it.
    database_url: str | None = Field(default=None, alias="DATABASE_URL")

    pg_host: str | None = Field(default=None, alias="PGHOST")
    pg_port: int = Field(default=5432, alias="PGPORT")
    pg_user: str | None = Field(default=None, alias="PGUSER")
    pg_password: str | None = Field(default=None, alias="PGPASSWORD")
    pg_db: str | None = Field(default=None, alias="PGDATABASE")

    # "stepped": 0.5 pp per day beyond day 3, capped at +3 pp.
    # "daily_multiplier": 1 + rental_days * dailyInsuranceMultiplier.
    insurance_duration_factor_mode: Literal["stepped", "daily_multiplier"] = Field(
        default="stepped", alias="INSURANCE_DURATION_FACTOR_MODE"
    )
    pricing_retry_after_seconds: int = Field(default=30, alias="PRICING_RETRY_AFTER_SECONDS")
    seed_duration_catalog: bool = Field(default=True, alias="SEED_DURATION_CATALOG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = {"env_file": ".env", "extra": "ignore"}

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            parsed = urlparse(self.database_url)
            if parsed.scheme.startswith("sqlite"):
                logger.info("DB config source → DATABASE_URL (sqlite)")
                return self.database_url

            logger.info(f"DB target → user={parsed.username} host={parsed.hostname} port={parsed.port} db={parsed.path.lstrip('/')}")
            logger.info("DB config source → DATABASE_URL")

            # Re-encode the password to handle special characters
            if parsed.password:
                encoded_password = quote_plus(parsed.password)
                port = f":{parsed.port}" if parsed.port else ""
                fixed_url = f"{parsed.scheme}://{parsed.username}:{encoded_password}@{parsed.hostname}{port}{parsed.path}"
                if parsed.query:
                    fixed_url = f"{fixed_url}?{parsed.query}"
                return fixed_url

            return self.database_url

        if self.pg_host and self.pg_user and self.pg_password and self.pg_db:
            logger.info(f"DB target → user={self.pg_user} host={self.pg_host} port={self.pg_port} db={self.pg_db}")
            logger.info("DB config source → PG* environment variables")

            encoded_password = quote_plus(self.pg_password)
            encoded_user = quote_plus(self.pg_user)

            return (
                f"postgresql+psycopg2://{encoded_user}:{encoded_password}"
                f"@{self.pg_host}:{self.pg_port}/{self.pg_db}?sslmode=require"
            )

        logger.warning("DATABASE_URL / PG* vars not set; using local %s", DEFAULT_SQLITE_URL)
        return DEFAULT_SQLITE_URL


settings = Settings()
