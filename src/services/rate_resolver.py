from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping

from pydantic import ValidationError

from config import config
from domain.rate_provider import RateProvider, RateUnavailableError
from domain.rate_tables import FALLBACK_SCHEDULES
from domain.rates import Jurisdiction, RateSchedule

from .rate_refresh import RefreshQueue, RefreshRequester
from .rate_sources import RateSource, RateSourceError
from .rate_store import RateStore

logger = logging.getLogger(__name__)


class RateResolver(RateProvider):
    """Resolve a rate schedule: store, then live source, then compiled tables.

    A stored schedule older than `staleness` is still returned as-is; the
    resolver only asks `refresher` to update it and never waits for the
    network on that path.
    """

    def __init__(
        self,
        *,
        store: RateStore,
        source: RateSource | None = None,
        fallback_tables: Mapping[Jurisdiction, Mapping[int, RateSchedule]] = FALLBACK_SCHEDULES,
        staleness: timedelta | None = None,
        refresher: RefreshRequester | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.source = source
        self.fallback_tables = fallback_tables
        self.staleness = staleness if staleness is not None else timedelta(hours=config().rate_staleness_hours)
        self.refresher: RefreshRequester = refresher or RefreshQueue()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def resolve(self, jurisdiction: Jurisdiction, year: int) -> RateSchedule:
        try:
            stored = self.store.get(jurisdiction, year)
        except ValidationError as exc:
            logger.warning("Stored rates for %s %s are unreadable, ignoring them: %s", jurisdiction, year, exc)
            stored = None

        if stored is not None:
            if self.is_stale(stored):
                logger.info(
                    "Rates for %s %s last updated %s; requesting refresh",
                    jurisdiction,
                    year,
                    stored.last_updated.isoformat(),
                )
                self.refresher.request(jurisdiction, year)
            return stored

        try:
            return self.refresh(jurisdiction, year)
        except RateSourceError as exc:
            logger.warning("Live rates for %s %s unavailable, using compiled table: %s", jurisdiction, year, exc)

        compiled = self.fallback_tables.get(jurisdiction, {}).get(year)
        if compiled is None:
            raise RateUnavailableError(
                f"No rate schedule available for {jurisdiction} tax year {year}",
                jurisdiction=jurisdiction,
                tax_year=year,
            )
        return compiled

    def refresh(self, jurisdiction: Jurisdiction, year: int) -> RateSchedule:
        """Fetch from the live source and upsert into the store."""
        if self.source is None:
            raise RateSourceError("No live rate source configured", jurisdiction=jurisdiction, tax_year=year)

        fetched = self.source.fetch_rates(jurisdiction, year)
        if fetched.jurisdiction != jurisdiction or fetched.tax_year != year:
            raise RateSourceError(
                f"Source returned {fetched.jurisdiction} {fetched.tax_year} for {jurisdiction} {year}",
                jurisdiction=jurisdiction,
                tax_year=year,
            )

        schedule = fetched.with_last_updated(self._clock())
        self.store.put(jurisdiction, year, schedule)
        return schedule

    def is_stale(self, schedule: RateSchedule) -> bool:
        return self._clock() - schedule.last_updated > self.staleness


__all__ = ["RateResolver"]
