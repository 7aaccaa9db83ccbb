# azure_product_catalog/pricing/store.py
from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..errors import CatalogConfigError, CatalogStateError
from ..taxonomy.model import PRODUCT_KEY_PRODUCT_SKU_METER, Taxonomy
from .scheduler import RegionLog

REGION_FILE_PREFIX = "products-"
REGION_FILE_SUFFIX = ".json"
MERGED_FILE_NAME = "products.json"
LOG_FILE_NAME = "log.json"
_LOGGER = logging.getLogger(__name__)


def region_file_name(region: str) -> str:
    """products-<region>.json (μόνο το filename, χωρίς κατάλογο)."""
    return f"{REGION_FILE_PREFIX}{region}{REGION_FILE_SUFFIX}"


def region_file_path(output_dir: str, region: str) -> str:
    return os.path.join(output_dir, region_file_name(region))


def _region_from_filename(name: str) -> Optional[str]:
    if not (name.startswith(REGION_FILE_PREFIX) and name.endswith(REGION_FILE_SUFFIX)):
        return None
    region = name[len(REGION_FILE_PREFIX) : -len(REGION_FILE_SUFFIX)]
    return region or None


def ensure_output_dir(path: str) -> str:
    """
    Ο κατάλογος εξόδου πρέπει να υπάρχει ήδη.

    Σε αντίθεση με τα JSONL catalogs, εδώ ΔΕΝ τον δημιουργούμε: ένα λάθος path
    είναι configuration error και πρέπει να σταματήσει το run πριν από
    οποιοδήποτε network call.
    """
    if not os.path.isdir(path):
        raise CatalogConfigError(f"Output directory does not exist: {path}")
    return path


def _write_json(path: str, payload: Any) -> None:
    tmp_path = path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
    os.replace(tmp_path, path)


def _read_json(path: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as ex:
        raise CatalogStateError(f"Failed to read {path}: {ex}", path=path) from ex


# --------------------------------------------------------------------
# Region / merged catalogs
# --------------------------------------------------------------------
def write_region_catalog(output_dir: str, region: str, taxonomy: Taxonomy) -> str:
    path = region_file_path(output_dir, region)
    _write_json(path, {region: taxonomy.serialize_ordered()})
    _LOGGER.info(
        "Saved %s (%d families, %d products).", path, taxonomy.family_count, taxonomy.product_count
    )
    return path


def load_region_catalog(
    path: str, key_policy: str = PRODUCT_KEY_PRODUCT_SKU_METER
) -> Tuple[str, Taxonomy]:
    """Φορτώνει ένα products-<region>.json. Χαλασμένο αρχείο = CatalogStateError."""
    data = _read_json(path)
    if not isinstance(data, dict) or len(data) != 1:
        raise CatalogStateError(
            f"{path}: expected an object with exactly one region key", path=path
        )
    region, families = next(iter(data.items()))
    expected = _region_from_filename(os.path.basename(path))
    if expected is not None and region != expected:
        raise CatalogStateError(
            f"{path}: file holds region '{region}' but its name says '{expected}'", path=path
        )
    if not isinstance(families, list):
        raise CatalogStateError(f"{path}: families of '{region}' must be an array", path=path)
    try:
        taxonomy = Taxonomy.from_serialized(families, key_policy=key_policy)
    except (AttributeError, KeyError, TypeError, ValueError) as ex:
        raise CatalogStateError(f"{path}: invalid catalog payload: {ex}", path=path) from ex
    return region, taxonomy


def list_region_files(output_dir: str) -> List[Tuple[str, str]]:
    """(region, path) για κάθε products-<region>.json, ταξινομημένα κατά region."""
    if not os.path.isdir(output_dir):
        return []
    entries: List[Tuple[str, str]] = []
    for name in os.listdir(output_dir):
        region = _region_from_filename(name)
        if region is None:
            continue
        path = os.path.join(output_dir, name)
        if os.path.isfile(path):
            entries.append((region, path))
    entries.sort()
    return entries


def load_all_region_catalogs(
    output_dir: str, key_policy: str = PRODUCT_KEY_PRODUCT_SKU_METER
) -> List[Tuple[str, Taxonomy]]:
    return [load_region_catalog(path, key_policy) for _, path in list_region_files(output_dir)]


def write_merged_catalog(output_dir: str, taxonomy: Taxonomy) -> str:
    path = os.path.join(output_dir, MERGED_FILE_NAME)
    _write_json(path, taxonomy.serialize_ordered())
    _LOGGER.info(
        "Saved %s (%d families, %d services, %d products).",
        path,
        taxonomy.family_count,
        taxonomy.service_count,
        taxonomy.product_count,
    )
    return path


# --------------------------------------------------------------------
# Region log (region -> last successful fetch, UTC)
# --------------------------------------------------------------------
def _parse_timestamp(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def load_region_log(output_dir: str) -> RegionLog:
    path = os.path.join(output_dir, LOG_FILE_NAME)
    if not os.path.exists(path):
        return {}
    data = _read_json(path)
    if not isinstance(data, dict):
        raise CatalogStateError(f"{path}: expected an object of region -> timestamp", path=path)
    log: RegionLog = {}
    for region, raw in data.items():
        try:
            log[str(region)] = _parse_timestamp(raw)
        except (AttributeError, TypeError, ValueError) as ex:
            raise CatalogStateError(
                f"{path}: invalid timestamp for region '{region}': {raw!r}", path=path
            ) from ex
    return log


def save_region_log(output_dir: str, log: RegionLog) -> str:
    path = os.path.join(output_dir, LOG_FILE_NAME)
    payload = {region: log[region].astimezone(timezone.utc).isoformat() for region in sorted(log)}
    _write_json(path, payload)
    return path


# --------------------------------------------------------------------
# Inventory (--list)
# --------------------------------------------------------------------
def list_catalogs(output_dir: str) -> List[Dict[str, Any]]:
    """
    Επιστρέφει λίστα με όλα τα region catalogs στον κατάλογο, μαζί με
    counts και το τελευταίο fetched_at από το log.

    Είναι read-only: χαλασμένα αρχεία εμφανίζονται με warning αντί να σκάμε.
    """
    try:
        log = load_region_log(output_dir)
        log_warning = None
    except CatalogStateError as ex:
        log, log_warning = {}, str(ex)

    entries: List[Dict[str, Any]] = []
    for region, path in list_region_files(output_dir):
        entry: Dict[str, Any] = {
            "region": region,
            "path": path,
            "families": None,
            "services": None,
            "products": None,
            "fetched_at": log[region].isoformat() if region in log else None,
            "warning": log_warning,
        }
        try:
            _, taxonomy = load_region_catalog(path)
            entry.update(
                families=taxonomy.family_count,
                services=taxonomy.service_count,
                products=taxonomy.product_count,
            )
        except CatalogStateError as ex:
            entry["warning"] = str(ex)
        entries.append(entry)
    return entries
