#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
config.py

Configuration constants and defaults for the Azure product catalog tool.

Every value can be overridden by an environment variable so that scheduled
runs (cron, CI) can be tuned without touching the command line.

Key idea: throttling budget
---------------------------
The Retail Prices API throttles aggressive clients. We stay under the limit
in two ways:
- a fixed sleep between consecutive page requests of one region,
- a bounded number of regions per run (the "batch"), choosing the most
  stale regions first so that every region is refreshed eventually.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import List, Optional

from .errors import CatalogConfigError
from .taxonomy.model import PRODUCT_KEY_POLICIES

# ---------------------------------------------------------------------
# Azure Retail Prices API
# ---------------------------------------------------------------------
RETAIL_API_URL = "https://prices.azure.com/api/retail/prices"

# ---------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------
# DEFAULT_OUTPUT_DIR:
# - Folder that holds products-<region>.json, products.json and log.json.
# - Must exist before the run starts; we never create it implicitly.
DEFAULT_OUTPUT_DIR = os.getenv("AZUREPRODUCTS_OUTPUT_DIR", "./")

# ---------------------------------------------------------------------
# Regions
# ---------------------------------------------------------------------
# DEFAULT_REGIONS:
# - Comma/semicolon/space separated armRegionName values.
DEFAULT_REGIONS = os.getenv(
    "AZUREPRODUCTS_REGIONS",
    "eastus,westus,centralus,canadacentral,brazilsouth,auseast,japaneast,"
    "koreacentral,eastasia,southeastasia,northeurope,westeurope",
)

# ---------------------------------------------------------------------
# Throttling
# ---------------------------------------------------------------------
# DEFAULT_BATCH_SIZE:
# - Max number of regions fetched in a single run.
DEFAULT_BATCH_SIZE = int(os.getenv("AZUREPRODUCTS_BATCH_SIZE", "10"))

# PAGE_DELAY_SECONDS:
# - Constant sleep between two page requests of the same region.
PAGE_DELAY_SECONDS = float(os.getenv("AZUREPRODUCTS_PAGE_DELAY", "1.0"))

# REGION_DELAY_SECONDS:
# - Constant sleep between two regions of the same run.
REGION_DELAY_SECONDS = float(os.getenv("AZUREPRODUCTS_REGION_DELAY", "10.0"))

# ---------------------------------------------------------------------
# Product identity
# ---------------------------------------------------------------------
# DEFAULT_PRODUCT_KEY:
# - Which record fields identify a product inside a service.
#   - "product"           -> productId
#   - "product-meter"     -> productId/meterId
#   - "product-sku-meter" -> productId/skuName/meterName
# - This decides how many price rows collapse into one product, so treat a
#   change here as a data decision: files written with another policy keep
#   their own keys.
DEFAULT_PRODUCT_KEY = os.getenv("AZUREPRODUCTS_PRODUCT_KEY", "product-sku-meter")

_REGION_SPLIT_RE = re.compile(r"[,; ]+")


def parse_regions(raw: Optional[str]) -> List[str]:
    """Split a region list on commas, semicolons and spaces (order kept, no duplicates)."""
    seen: set[str] = set()
    out: List[str] = []
    for part in _REGION_SPLIT_RE.split(raw or ""):
        region = part.strip()
        if not region or region in seen:
            continue
        seen.add(region)
        out.append(region)
    return out


@dataclass(frozen=True)
class CatalogSettings:
    """Validated run configuration."""

    output_dir: str
    regions: List[str]
    batch_size: int = DEFAULT_BATCH_SIZE
    page_delay: float = PAGE_DELAY_SECONDS
    region_delay: float = REGION_DELAY_SECONDS
    product_key: str = DEFAULT_PRODUCT_KEY
    skip_empty_arm_sku: bool = False
    seed: Optional[int] = None

    def validate(self) -> "CatalogSettings":
        if not self.regions:
            raise CatalogConfigError("No regions requested.")
        if self.batch_size < 1:
            raise CatalogConfigError(f"Batch size must be >= 1 (got {self.batch_size}).")
        if self.page_delay < 0 or self.region_delay < 0:
            raise CatalogConfigError("Delays must be non-negative.")
        if self.product_key not in PRODUCT_KEY_POLICIES:
            raise CatalogConfigError(
                f"Unknown product key policy '{self.product_key}' "
                f"(expected one of: {', '.join(sorted(PRODUCT_KEY_POLICIES))})."
            )
        return self
