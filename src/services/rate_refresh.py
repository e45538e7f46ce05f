"""Refreshing stale rate schedules.

Nothing here runs on its own: the resolver only *requests* a refresh, and the
hosting process decides when it happens, either by draining a `RefreshQueue`
(e.g. from a cron job) or by handing requests to a `ThreadedRefresher`.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Protocol

from domain.rates import Jurisdiction, RateSchedule

from .rate_sources import RateSourceError

logger = logging.getLogger(__name__)

RateKey = tuple[Jurisdiction, int]
RefreshFn = Callable[[Jurisdiction, int], RateSchedule]


class RefreshRequester(Protocol):
    def request(self, jurisdiction: Jurisdiction, year: int) -> None: ...


class RefreshQueue(RefreshRequester):
    def __init__(self) -> None:
        self._pending: dict[RateKey, None] = {}
        self._lock = threading.Lock()

    def request(self, jurisdiction: Jurisdiction, year: int) -> None:
        with self._lock:
            self._pending[(jurisdiction, year)] = None

    def drain(self) -> list[RateKey]:
        with self._lock:
            keys = list(self._pending)
            self._pending.clear()
        return keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)


@dataclass
class RefreshOutcome:
    refreshed: list[RateKey] = field(default_factory=list)
    failed: list[RateKey] = field(default_factory=list)


def refresh_pending(queue: RefreshQueue, refresh: RefreshFn) -> RefreshOutcome:
    """Run every queued refresh once. Failed keys are reported, not re-queued."""
    outcome = RefreshOutcome()
    for jurisdiction, year in queue.drain():
        try:
            refresh(jurisdiction, year)
        except RateSourceError as exc:
            logger.warning("Refresh of %s %s rates failed: %s", jurisdiction, year, exc)
            outcome.failed.append((jurisdiction, year))
            continue
        outcome.refreshed.append((jurisdiction, year))
    return outcome


class ThreadedRefresher(RefreshRequester):
    """Fire-and-forget refreshes on a worker pool, one in flight per key."""

    def __init__(self, refresh: RefreshFn, *, executor: Executor | None = None, max_workers: int = 1) -> None:
        self._refresh = refresh
        self._executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="rate-refresh")
        self._in_flight: dict[RateKey, Future[None]] = {}
        self._lock = threading.Lock()

    def request(self, jurisdiction: Jurisdiction, year: int) -> None:
        key = (jurisdiction, year)
        with self._lock:
            if key in self._in_flight:
                return
            logger.info("Scheduling background refresh of %s %s rates", jurisdiction, year)
            self._in_flight[key] = self._executor.submit(self._run, key)

    def wait(self, timeout: float | None = None) -> None:
        with self._lock:
            futures = list(self._in_flight.values())
        wait(futures, timeout=timeout)

    def shutdown(self, *, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending)

    def _run(self, key: RateKey) -> None:
        jurisdiction, year = key
        try:
            self._refresh(jurisdiction, year)
        except RateSourceError as exc:
            logger.warning("Background refresh of %s %s rates failed: %s", jurisdiction, year, exc)
        except Exception:
            logger.exception("Background refresh of %s %s rates raised unexpectedly", jurisdiction, year)
        finally:
            with self._lock:
                self._in_flight.pop(key, None)


__all__ = ["RefreshOutcome", "RefreshQueue", "RefreshRequester", "ThreadedRefresher", "refresh_pending"]
