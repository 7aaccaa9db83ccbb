# azure_product_catalog/pipeline.py
"""
One catalog refresh run.

Ροή:
- Επιλέγει ποια regions θα φέρουμε (scheduler, με βάση το log.json).
- Για κάθε region: fetch -> products-<region>.json -> ενημέρωση log.json.
- Διαβάζει ΟΛΑ τα products-*.json (παλιά + νέα) και γράφει το merged
  products.json.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .config import CatalogSettings
from .pricing.merge import merge_all
from .pricing.retail_api import RetailCatalogFetcher
from .pricing.scheduler import select_batch
from .pricing.store import (
    ensure_output_dir,
    load_all_region_catalogs,
    load_region_log,
    save_region_log,
    write_merged_catalog,
    write_region_catalog,
)
from .utils.trace import RunTrace

_LOGGER = logging.getLogger(__name__)


@dataclass
class RunSummary:
    selected_regions: List[str]
    fetched_regions: List[str] = field(default_factory=list)
    merged_regions: List[str] = field(default_factory=list)
    families: int = 0
    services: int = 0
    products: int = 0
    merged_path: str = ""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def run_catalog_refresh(
    settings: CatalogSettings,
    *,
    fetcher: Optional[RetailCatalogFetcher] = None,
    rng: Optional[random.Random] = None,
    sleep: Callable[[float], None] = time.sleep,
    now: Callable[[], datetime] = _utcnow,
    trace: Optional[RunTrace] = None,
) -> RunSummary:
    """
    Εκτελεί ένα πλήρες run. Κάθε CatalogError διακόπτει το run.

    Ένα region γράφεται στο δίσκο και στο log ΜΟΝΟ αφού ολοκληρωθεί όλο το
    paginated fetch του.

    log.json is saved after every successful region, right after that
    region's file, not once at the end of the run. Files and log therefore
    agree even when a later region of the same run fails.
    """
    settings.validate()
    output_dir = ensure_output_dir(settings.output_dir)
    region_log = load_region_log(output_dir)

    if rng is None:
        rng = random.Random(settings.seed)
    batch = sorted(select_batch(settings.regions, region_log, settings.batch_size, rng))
    summary = RunSummary(selected_regions=batch)
    _LOGGER.info("Regions selected for this run: %s", ", ".join(batch))
    trace = trace if trace is not None else RunTrace()
    trace.batch_selected(settings.regions, batch, settings.batch_size)

    own_fetcher = fetcher is None
    if fetcher is None:
        fetcher = RetailCatalogFetcher(
            page_delay=settings.page_delay,
            key_policy=settings.product_key,
            skip_empty_arm_sku=settings.skip_empty_arm_sku,
            sleep=sleep,
        )

    try:
        for idx, region in enumerate(batch):
            if idx > 0 and settings.region_delay > 0:
                # slow down to avoid throttling
                sleep(settings.region_delay)

            taxonomy = fetcher.fetch(region)
            path = write_region_catalog(output_dir, region, taxonomy)
            region_log[region] = now()
            save_region_log(output_dir, region_log)
            summary.fetched_regions.append(region)

            trace.region_fetched(region, path, taxonomy)
    finally:
        if own_fetcher:
            fetcher.close()

    catalogs = load_all_region_catalogs(output_dir, settings.product_key)
    merged = merge_all((tax for _, tax in catalogs), key_policy=settings.product_key)
    summary.merged_path = write_merged_catalog(output_dir, merged)
    summary.merged_regions = [region for region, _ in catalogs]
    summary.families = merged.family_count
    summary.services = merged.service_count
    summary.products = merged.product_count

    trace.merge_completed(summary.merged_regions, summary.merged_path, merged)
    return summary
