from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Protocol

import requests
from bs4 import BeautifulSoup
from pydantic import ValidationError
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

from config import config
from domain.rates import Jurisdiction, RateSchedule, TaxBand, TaxRules
from domain.tax_lots import tax_year_of

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"\d[\d,]*(?:\.\d+)?")
_PERCENT = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_POUNDS = re.compile(r"£\s*(\d[\d,]*(?:\.\d+)?)")


class RateSourceError(Exception):
    def __init__(
        self,
        message: str,
        *,
        jurisdiction: str | None = None,
        tax_year: int | None = None,
        status_code: int | None = None,
        payload: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.jurisdiction = jurisdiction
        self.tax_year = tax_year
        self.status_code = status_code
        self.payload = payload


class RateSource(Protocol):
    def fetch_rates(self, jurisdiction: Jurisdiction, year: int) -> RateSchedule: ...


class _GovUkClient:
    def __init__(
        self,
        timeout: float | None = None,
        session: requests.Session | None = None,
        retry_attempts: int | None = None,
        retry_backoff_seconds: float = 1,
    ) -> None:
        settings = config()
        self.timeout = timeout if timeout is not None else settings.rate_fetch_timeout_seconds
        self._session = session or requests.Session()

        retry = Retry(
            total=retry_attempts if retry_attempts is not None else settings.rate_fetch_retry_attempts,
            backoff_factor=retry_backoff_seconds,
            status_forcelist={429, 502, 503, 504},
            allowed_methods={"GET"},
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    def get_page(self, url: str) -> str:
        try:
            response = self._session.request(
                "GET",
                url,
                timeout=self.timeout,
                headers={"Accept": "text/html", "User-Agent": "crypto-gains-tax/0.1"},
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            status_code = getattr(exc.response, "status_code", None)
            raise RateSourceError(f"GOV.UK request failed for {url}", status_code=status_code) from exc
        except requests.RequestException as exc:
            raise RateSourceError(f"GOV.UK request failed for {url}") from exc

        return response.text


class GovUkRateSource(RateSource):
    """Scrape UK capital gains rates and the annual exempt amount from GOV.UK.

    The rates page lists one table row per band, e.g. ``£0 to £37,700 | 10%``
    or ``Above £37,700 | 20%``. The allowances page states the exempt amount
    per tax year, e.g. ``2024 to 2025 ... £3,000``. The rates page only shows the
    bands in force today, so only the current tax year is answered.
    """

    def __init__(
        self,
        *,
        client: _GovUkClient | None = None,
        rates_url: str | None = None,
        allowances_url: str | None = None,
        source_name: str = "gov-uk",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        settings = config()
        self.client = client or _GovUkClient()
        self.rates_url = rates_url or settings.gov_uk_rates_url
        self.allowances_url = allowances_url or settings.gov_uk_allowances_url
        self.source_name = source_name
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def fetch_rates(self, jurisdiction: Jurisdiction, year: int) -> RateSchedule:
        if jurisdiction != Jurisdiction.UK:
            raise RateSourceError(
                f"GOV.UK has no rates for {jurisdiction}", jurisdiction=jurisdiction, tax_year=year
            )
        current_year = tax_year_of(self._clock())
        if year != current_year:
            raise RateSourceError(
                f"GOV.UK only publishes rates for the current tax year {current_year}, not {year}",
                jurisdiction=jurisdiction,
                tax_year=year,
            )

        rates_html = self.client.get_page(self.rates_url)
        allowances_html = self.client.get_page(self.allowances_url)

        bands = self._parse_bands(rates_html)
        allowance = self._parse_allowance(allowances_html, year)
        try:
            return RateSchedule(
                jurisdiction=Jurisdiction.UK,
                tax_year=year,
                bands=tuple(bands),
                allowance=allowance,
                currency="GBP",
                source=self.source_name,
                last_updated=self._clock(),
                rules=TaxRules(same_day_rule=True, bed_and_breakfast_rule=True, matching_window_days=30),
            )
        except ValidationError as exc:
            raise RateSourceError(
                "GOV.UK rates page produced an invalid schedule",
                jurisdiction=jurisdiction,
                tax_year=year,
                payload=[band.model_dump() for band in bands],
            ) from exc

    def _parse_bands(self, html: str) -> list[TaxBand]:
        soup = BeautifulSoup(html, "html.parser")
        bands: list[TaxBand] = []
        for row in soup.select("table tr"):
            cells = row.find_all("td")
            if len(cells) < 2:
                continue
            threshold_text = cells[0].get_text(" ", strip=True)
            rate_text = cells[1].get_text(" ", strip=True)

            rate_match = _PERCENT.search(rate_text)
            bounds = self._parse_bounds(threshold_text)
            if rate_match is None or bounds is None:
                continue
            lower, upper = bounds
            try:
                bands.append(TaxBand(rate=Decimal(rate_match.group(1)) / 100, lower_bound=lower, upper_bound=upper))
            except ValidationError as exc:
                raise RateSourceError("GOV.UK rates table contains an invalid band", payload=row.text) from exc

        if not bands:
            raise RateSourceError("No rate bands found on GOV.UK rates page", payload=html[:500])
        bands.sort(key=lambda band: band.lower_bound)
        return bands

    @staticmethod
    def _parse_bounds(text: str) -> tuple[Decimal, Decimal | None] | None:
        numbers = [_to_decimal(raw) for raw in _NUMBER.findall(text)]
        lowered = text.lower()
        if len(numbers) >= 2:
            return numbers[0], numbers[1]
        if len(numbers) == 1:
            if "above" in lowered or "over" in lowered:
                return numbers[0], None
            if "up to" in lowered or "below" in lowered:
                return Decimal(0), numbers[0]
        return None

    @staticmethod
    def _parse_allowance(html: str, year: int) -> Decimal:
        soup = BeautifulSoup(html, "html.parser")
        label = f"{year} to {year + 1}"
        for element in soup.find_all(["tr", "li", "p"]):
            text = element.get_text(" ", strip=True)
            if label not in text:
                continue
            match = _POUNDS.search(text)
            if match is not None:
                return _to_decimal(match.group(1))
        raise RateSourceError(
            f"No annual exempt amount for tax year {label} on GOV.UK allowances page",
            jurisdiction=Jurisdiction.UK,
            tax_year=year,
        )


class RoutingRateSource(RateSource):
    """Dispatch to the source registered for each jurisdiction."""

    def __init__(self, sources: Mapping[Jurisdiction, RateSource]) -> None:
        if not sources:
            msg = "sources must contain at least one entry"
            raise ValueError(msg)
        self._sources = dict(sources)

    def fetch_rates(self, jurisdiction: Jurisdiction, year: int) -> RateSchedule:
        source = self._sources.get(jurisdiction)
        if source is None:
            raise RateSourceError(
                f"No live rate source for {jurisdiction}", jurisdiction=jurisdiction, tax_year=year
            )
        return source.fetch_rates(jurisdiction, year)


def _to_decimal(raw: str) -> Decimal:
    try:
        return Decimal(raw.replace(",", ""))
    except InvalidOperation as exc:
        raise RateSourceError(f"Not a number: {raw!r}") from exc


__all__ = ["GovUkRateSource", "RateSource", "RateSourceError", "RoutingRateSource"]
