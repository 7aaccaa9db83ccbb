"""
Run trace for one catalog refresh.

Each run phase becomes one event with a sequence number, a UTC timestamp and
the seconds elapsed since the first event of the run:

- ``batch_selected``: requested, selected and skipped regions,
- ``region_fetched``: one per region written to disk, with taxonomy counts,
- ``merge_completed``: merged regions, output path and taxonomy counts.

Events are always kept in memory (``RunTrace.events``); with a ``path`` they
are also appended to a JSONL file.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..taxonomy.model import Taxonomy

PHASE_BATCH_SELECTED = "batch_selected"
PHASE_REGION_FETCHED = "region_fetched"
PHASE_MERGE_COMPLETED = "merge_completed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def taxonomy_counts(taxonomy: Taxonomy) -> Dict[str, int]:
    return {
        "families": taxonomy.family_count,
        "services": taxonomy.service_count,
        "products": taxonomy.product_count,
    }


@dataclass
class RunTrace:
    path: Optional[Path] = None
    clock: Callable[[], datetime] = _utcnow
    events: List[Dict[str, Any]] = field(default_factory=list)
    _started_at: Optional[datetime] = field(default=None, init=False, repr=False)

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def batch_selected(self, requested: Iterable[str], selected: Iterable[str], batch_size: int) -> None:
        requested = list(requested)
        selected = sorted(selected)
        self._emit(
            PHASE_BATCH_SELECTED,
            {
                "requested": requested,
                "selected": selected,
                "skipped": sorted(set(requested) - set(selected)),
                "batch_size": batch_size,
                "throttled": len(set(requested)) > batch_size,
            },
        )

    def region_fetched(self, region: str, path: str, taxonomy: Taxonomy) -> None:
        self._emit(PHASE_REGION_FETCHED, {"path": path, **taxonomy_counts(taxonomy)}, region=region)

    def merge_completed(self, regions: Iterable[str], path: str, taxonomy: Taxonomy) -> None:
        self._emit(
            PHASE_MERGE_COMPLETED,
            {"regions": list(regions), "path": path, **taxonomy_counts(taxonomy)},
        )

    def phases(self) -> List[str]:
        return [e["phase"] for e in self.events]

    def _emit(self, phase: str, payload: Dict[str, Any], *, region: Optional[str] = None) -> None:
        now = self.clock()
        if self._started_at is None:
            self._started_at = now

        event: Dict[str, Any] = {
            "seq": len(self.events) + 1,
            "timestamp": now.isoformat(),
            "elapsed_s": round((now - self._started_at).total_seconds(), 3),
            "phase": phase,
            "payload": payload,
        }
        if region:
            event["region"] = region
        self.events.append(event)

        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(event, ensure_ascii=False) + "\n")


def build_run_trace(path: Path | str | None) -> RunTrace:
    return RunTrace(Path(path) if path else None)


__all__ = [
    "PHASE_BATCH_SELECTED",
    "PHASE_REGION_FETCHED",
    "PHASE_MERGE_COMPLETED",
    "RunTrace",
    "build_run_trace",
    "taxonomy_counts",
]
