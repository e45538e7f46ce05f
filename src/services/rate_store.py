from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Protocol

from domain.rates import Jurisdiction, RateSchedule


class RateStore(Protocol):
    def get(self, jurisdiction: Jurisdiction, year: int) -> RateSchedule | None: ...

    def put(self, jurisdiction: Jurisdiction, year: int, schedule: RateSchedule) -> None: ...


class JsonRateStore(RateStore):
    """One JSON document per (jurisdiction, year); `put` overwrites atomically."""

    def __init__(self, *, root_dir: Path) -> None:
        self.root_dir = root_dir

    def get(self, jurisdiction: Jurisdiction, year: int) -> RateSchedule | None:
        path = self._file_path(jurisdiction, year)
        if not path.exists():
            return None
        return RateSchedule.model_validate_json(path.read_text(encoding="utf-8"))

    def put(self, jurisdiction: Jurisdiction, year: int, schedule: RateSchedule) -> None:
        if schedule.jurisdiction != jurisdiction or schedule.tax_year != year:
            msg = (
                f"Schedule for {schedule.jurisdiction}/{schedule.tax_year} "
                f"cannot be stored under {jurisdiction}/{year}"
            )
            raise ValueError(msg)

        path = self._file_path(jurisdiction, year)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Readers only ever observe a complete document.
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(schedule.model_dump_json(indent=2))
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _file_path(self, jurisdiction: Jurisdiction, year: int) -> Path:
        return self.root_dir / "rates" / f"{Jurisdiction(jurisdiction).value}-{year}.json"


__all__ = ["JsonRateStore", "RateStore"]
