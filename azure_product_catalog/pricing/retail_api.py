# azure_product_catalog/pricing/retail_api.py
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from rich.console import Console

from ..config import PAGE_DELAY_SECONDS, RETAIL_API_URL
from ..errors import RetailApiError
from ..taxonomy.model import PRODUCT_KEY_PRODUCT_SKU_METER, PriceRecord, Taxonomy

console = Console()
_LOGGER = logging.getLogger(__name__)

# Πόσους χαρακτήρες από ένα χαλασμένο body γράφουμε στο debug log.
BODY_PREVIEW_CHARS = 100


def build_region_url(region: str, skip_empty_arm_sku: bool = False) -> str:
    """
    Αρχικό URL για τα "Consumption" items ενός region.

    Δεν κάνουμε urlencode: το API δέχεται το $filter raw και το httpx
    κωδικοποιεί τα κενά μόνο του.
    """
    filter_str = f"armRegionName eq '{region}' and type eq 'Consumption'"
    if skip_empty_arm_sku:
        filter_str += " and armSkuName ne ''"
    return f"{RETAIL_API_URL}?$filter={filter_str}"


def decode_page(payload: Any) -> Tuple[List[PriceRecord], str, int]:
    """
    Αποκωδικοποιεί ένα page του Retail API σε (records, next_page_link, count).

    Δέχεται και τα δύο casings (Items/items, NextPageLink/nextPageLink) όπως
    ο υπόλοιπος κώδικας. Σηκώνει ValueError αν το σχήμα δεν είναι το αναμενόμενο.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"page body is not an object: {type(payload).__name__}")

    items = payload.get("Items")
    if items is None:
        items = payload.get("items")
    if items is None:
        items = []
    if not isinstance(items, list):
        raise ValueError("page Items is not an array")

    records = [PriceRecord.from_item(it) for it in items]
    next_link = payload.get("NextPageLink") or payload.get("nextPageLink") or ""
    if not isinstance(next_link, str):
        raise ValueError("page NextPageLink is not a string")

    count = payload.get("Count")
    if count is None:
        count = payload.get("count")
    try:
        count = int(count) if count is not None else len(records)
    except (TypeError, ValueError):
        count = len(records)

    return records, next_link, count


class RetailCatalogFetcher:
    """
    Φέρνει ΟΛΑ τα Consumption items ενός region και τα διπλώνει σε Taxonomy.

    - Ένα request τη φορά, σειριακά.
    - Το NextPageLink το ελέγχει ο server, το ακολουθούμε όπως είναι.
    - Σταθερό sleep ανάμεσα στα pages (όχι retry, όχι backoff).
    - Οποιοδήποτε σφάλμα (transport, HTTP status, body) είναι fatal για το
      region: δεν επιστρέφεται μισό Taxonomy.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        *,
        page_delay: float = PAGE_DELAY_SECONDS,
        key_policy: str = PRODUCT_KEY_PRODUCT_SKU_METER,
        skip_empty_arm_sku: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        debug: bool = False,
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=httpx.Timeout(60.0, connect=10.0))
        self.page_delay = page_delay
        self.key_policy = key_policy
        self.skip_empty_arm_sku = skip_empty_arm_sku
        self.sleep = sleep
        self.debug = debug

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "RetailCatalogFetcher":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _get_page(self, region: str, url: str) -> Dict[str, Any]:
        try:
            resp = self.client.get(url)
        except httpx.HTTPError as ex:
            raise RetailApiError(
                f"Transport failure while fetching {url}: {ex}", region=region, url=url
            ) from ex

        if not resp.is_success:
            raise RetailApiError(
                f"[ERROR: {resp.status_code}] Failed to fetch product category from {url}",
                region=region,
                url=url,
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as ex:
            body = resp.text or ""
            _LOGGER.debug("Undecodable body from %s: %s", url, body[:BODY_PREVIEW_CHARS])
            raise RetailApiError(
                f"Failed to deserialize JSON response from {url}", region=region, url=url
            ) from ex

    def fetch(self, region: str) -> Taxonomy:
        taxonomy = Taxonomy(key_policy=self.key_policy)
        url = build_region_url(region, self.skip_empty_arm_sku)
        page = 0

        console.print(f"[cyan]===== Fetching product category from {region}...[/cyan]")

        while True:
            page += 1
            if self.debug:
                console.print(f"[cyan]fetch[{region}]: page {page}, url={url}[/cyan]")
            _LOGGER.debug("fetch[%s]: page %d, url=%s", region, page, url)

            payload = self._get_page(region, url)
            try:
                records, next_link, count = decode_page(payload)
            except (TypeError, ValueError) as ex:
                _LOGGER.debug("Malformed page from %s: %s", url, str(payload)[:BODY_PREVIEW_CHARS])
                raise RetailApiError(
                    f"Malformed page from {url}: {ex}", region=region, url=url
                ) from ex

            taxonomy.insert_all(records)
            _LOGGER.info("Fetched %d items from %s", count, url)

            if not next_link:
                break
            url = next_link
            # slow down to avoid throttling
            if self.page_delay > 0:
                self.sleep(self.page_delay)

        _LOGGER.info(
            "Region '%s' done: %d pages, %d families, %d services, %d products.",
            region,
            page,
            taxonomy.family_count,
            taxonomy.service_count,
            taxonomy.product_count,
        )
        return taxonomy


def fetch_region_taxonomy(
    region: str,
    *,
    page_delay: float = PAGE_DELAY_SECONDS,
    key_policy: str = PRODUCT_KEY_PRODUCT_SKU_METER,
    skip_empty_arm_sku: bool = False,
) -> Taxonomy:
    """One-shot helper: own client, fetch one region, close."""
    with RetailCatalogFetcher(
        page_delay=page_delay,
        key_policy=key_policy,
        skip_empty_arm_sku=skip_empty_arm_sku,
    ) as fetcher:
        return fetcher.fetch(region)
