"""Pick the regions to fetch this run without exceeding the batch budget."""

from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

_LOGGER = logging.getLogger(__name__)

RegionLog = Dict[str, datetime]


def _staleness_key(region: str, log: RegionLog) -> Tuple[int, float]:
    # Never fetched sorts before any timestamp.
    ts = log.get(region)
    if ts is None:
        return (0, 0.0)
    return (1, ts.timestamp())


def select_batch(
    requested: Iterable[str],
    log: RegionLog,
    batch_size: int,
    rng: Optional[random.Random] = None,
) -> Set[str]:
    """
    Return at most ``batch_size`` regions out of ``requested``, stalest first.

    - If everything fits in the batch, ``requested`` is returned as-is.
    - Otherwise regions are ranked by their last fetch time (missing from the
      log = most stale). Regions strictly staler than the batch boundary are
      always taken; regions tied at the boundary (e.g. several regions that
      were never fetched) are sampled uniformly with ``rng`` to fill the rest.

    ``len(result) == min(len(set(requested)), batch_size)``.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1 (got {batch_size})")

    regions = set(requested)
    if len(regions) <= batch_size:
        return regions

    rng = rng or random.Random()
    ranked: List[str] = sorted(regions, key=lambda r: (_staleness_key(r, log), r))
    boundary = _staleness_key(ranked[batch_size - 1], log)

    must = [r for r in ranked if _staleness_key(r, log) < boundary]
    tied = [r for r in ranked if _staleness_key(r, log) == boundary]
    chosen = set(must) | set(rng.sample(tied, batch_size - len(must)))

    _LOGGER.info(
        "Throttling: %d regions requested, batch size %d -> %s (skipped: %s)",
        len(regions),
        batch_size,
        ", ".join(sorted(chosen)),
        ", ".join(sorted(regions - chosen)),
    )
    return chosen
