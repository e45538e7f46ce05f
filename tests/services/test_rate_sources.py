from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from unittest.mock import Mock

import pytest
import requests

from domain.rates import Jurisdiction
from services.rate_sources import GovUkRateSource, RateSourceError, RoutingRateSource, _GovUkClient
from tests.helpers.rate_stubs import StubRateSource, make_schedule

RATES_URL = "https://example.test/cgt/rates"
ALLOWANCES_URL = "https://example.test/cgt/allowances"
FETCHED_AT = datetime(2024, 7, 1, tzinfo=timezone.utc)

RATES_HTML = """
<html><body>
<table>
  <tr><th>Taxable amount</th><th>Rate</th></tr>
  <tr><td>Above £37,700</td><td>20%</td></tr>
  <tr><td>£0 to £37,700</td><td>10%</td></tr>
</table>
</body></html>
"""

ALLOWANCES_HTML = """
<html><body>
<table>
  <tr><th>Tax year</th><th>Tax-free allowance</th></tr>
  <tr><td>2023 to 2024</td><td>£6,000</td></tr>
  <tr><td>2024 to 2025</td><td>£3,000</td></tr>
</table>
</body></html>
"""


def _mock_response(text: str, status_code: int = 200) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.text = text
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(response=response)
    else:
        response.raise_for_status.return_value = None
    return response


def _session(pages: dict[str, Mock]) -> Mock:
    session = Mock()

    def request(method: str, url: str, **kwargs: Any) -> Mock:
        return pages[url]

    session.request.side_effect = request
    return session


def _source(session: Mock, *, fetched_at: datetime = FETCHED_AT) -> GovUkRateSource:
    return GovUkRateSource(
        client=_GovUkClient(session=session, timeout=1, retry_attempts=0),
        rates_url=RATES_URL,
        allowances_url=ALLOWANCES_URL,
        clock=lambda: fetched_at,
    )


def test_fetch_rates_parses_bands_and_allowance() -> None:
    session = _session({RATES_URL: _mock_response(RATES_HTML), ALLOWANCES_URL: _mock_response(ALLOWANCES_HTML)})

    schedule = _source(session).fetch_rates(Jurisdiction.UK, 2024)

    assert schedule.jurisdiction == Jurisdiction.UK
    assert schedule.tax_year == 2024
    assert schedule.allowance == Decimal("3000")
    assert [(band.rate, band.lower_bound, band.upper_bound) for band in schedule.bands] == [
        (Decimal("0.1"), Decimal(0), Decimal("37700")),
        (Decimal("0.2"), Decimal("37700"), None),
    ]
    assert schedule.currency == "GBP"
    assert schedule.source == "gov-uk"
    assert schedule.last_updated == FETCHED_AT
    assert schedule.rules.bed_and_breakfast_rule
    assert session.request.call_args.kwargs["timeout"] == 1


def test_year_missing_from_allowances_page_fails() -> None:
    session = _session({RATES_URL: _mock_response(RATES_HTML), ALLOWANCES_URL: _mock_response(ALLOWANCES_HTML)})
    later = datetime(2026, 5, 1, tzinfo=timezone.utc)

    with pytest.raises(RateSourceError) as exc_info:
        _source(session, fetched_at=later).fetch_rates(Jurisdiction.UK, 2026)

    assert exc_info.value.tax_year == 2026


def test_past_year_is_not_fetched() -> None:
    session = Mock()

    with pytest.raises(RateSourceError) as exc_info:
        _source(session).fetch_rates(Jurisdiction.UK, 2023)

    assert exc_info.value.tax_year == 2023
    session.request.assert_not_called()


def test_page_without_bands_fails() -> None:
    session = _session(
        {RATES_URL: _mock_response("<p>Page moved</p>"), ALLOWANCES_URL: _mock_response(ALLOWANCES_HTML)}
    )

    with pytest.raises(RateSourceError):
        _source(session).fetch_rates(Jurisdiction.UK, 2024)


def test_bands_with_gap_are_rejected() -> None:
    broken = RATES_HTML.replace("Above £37,700", "Above £40,000")
    session = _session({RATES_URL: _mock_response(broken), ALLOWANCES_URL: _mock_response(ALLOWANCES_HTML)})

    with pytest.raises(RateSourceError):
        _source(session).fetch_rates(Jurisdiction.UK, 2024)


def test_http_error_is_wrapped() -> None:
    session = _session({RATES_URL: _mock_response("", status_code=503), ALLOWANCES_URL: _mock_response("")})

    with pytest.raises(RateSourceError) as exc_info:
        _source(session).fetch_rates(Jurisdiction.UK, 2024)

    assert exc_info.value.status_code == 503


def test_connection_error_is_wrapped() -> None:
    session = Mock()
    session.request.side_effect = requests.ConnectionError("no route")

    with pytest.raises(RateSourceError):
        _source(session).fetch_rates(Jurisdiction.UK, 2024)


def test_non_uk_jurisdiction_is_not_fetched() -> None:
    session = Mock()

    with pytest.raises(RateSourceError):
        _source(session).fetch_rates(Jurisdiction.US, 2024)

    session.request.assert_not_called()


def test_routing_source_dispatches_by_jurisdiction() -> None:
    us_source = StubRateSource(make_schedule(jurisdiction=Jurisdiction.US, year=2024))
    routing = RoutingRateSource({Jurisdiction.US: us_source})

    schedule = routing.fetch_rates(Jurisdiction.US, 2024)

    assert schedule.jurisdiction == Jurisdiction.US
    assert us_source.calls == [(Jurisdiction.US, 2024)]
    with pytest.raises(RateSourceError):
        routing.fetch_rates(Jurisdiction.UK, 2024)
