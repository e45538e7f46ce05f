from __future__ import annotations

from functools import cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ARTIFACTS_DIR = PROJECT_ROOT / "artifacts"
DB_FILE = ARTIFACTS_DIR / "crypto_gains_tax.db"


class AppSettings(BaseSettings):
    db_file: Path = DB_FILE
    default_jurisdiction: str = "UK"

    rate_staleness_hours: int = 24
    rate_fetch_timeout_seconds: float = 10.0
    rate_fetch_retry_attempts: int = 3
    gov_uk_rates_url: str = "https://www.gov.uk/capital-gains-tax/rates"
    gov_uk_allowances_url: str = "https://www.gov.uk/capital-gains-tax/allowances"

    # Disposals of these codes are cash withdrawals, not taxable events.
    fiat_currency_codes: tuple[str, ...] = ("GBP", "USD", "EUR")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@cache
def config() -> AppSettings:
    return AppSettings()
