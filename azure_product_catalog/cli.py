#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Azure Product Catalog – CLI

Ροή:
- Διαβάζει output dir + λίστα regions.
- Διαλέγει έως --batch-size regions (τα πιο "παλιά" πρώτα, βάσει log.json)
  για να μην μας κάνει throttle το Azure Retail Prices API.
- Για κάθε region φέρνει όλα τα Consumption items και γράφει
  products-<region>.json.
- Κάνει merge όλων των products-*.json σε ένα products.json.
"""

import argparse
import logging
import sys
from typing import List, Optional

from rich.console import Console

from .config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PRODUCT_KEY,
    DEFAULT_REGIONS,
    PAGE_DELAY_SECONDS,
    REGION_DELAY_SECONDS,
    CatalogSettings,
    parse_regions,
)
from .errors import CatalogError
from .pipeline import run_catalog_refresh
from .pricing.store import list_catalogs
from .taxonomy.model import PRODUCT_KEY_POLICIES
from .utils.trace import build_run_trace

console = Console()


# --------------------------------------------------------------------
# Argument parsing
# --------------------------------------------------------------------
def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="azure-products",
        description=(
            "Azure Product Catalog – Retail Prices API -> family/service/product JSON\n\n"
            "Φέρνει τα Consumption items ανά region, τα ομαδοποιεί σε\n"
            "service family → service → product και γράφει:\n"
            "- products-<region>.json για κάθε region που φέρθηκε\n"
            "- products.json με το merge όλων των regions στον κατάλογο\n"
            "- log.json με την ώρα του τελευταίου επιτυχημένου fetch ανά region\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-o",
        "--output-dir",
        default=DEFAULT_OUTPUT_DIR,
        help=f"Κατάλογος εξόδου, πρέπει να υπάρχει ήδη (default: {DEFAULT_OUTPUT_DIR}).",
    )

    parser.add_argument(
        "-r",
        "--regions",
        default=DEFAULT_REGIONS,
        help="Λίστα Azure regions χωρισμένη με ',', ';' ή κενά (default: 12 βασικά regions).",
    )

    parser.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help=f"Μέγιστος αριθμός regions ανά run (default: {DEFAULT_BATCH_SIZE}).",
    )

    parser.add_argument(
        "--page-delay",
        type=float,
        default=PAGE_DELAY_SECONDS,
        help=f"Δευτερόλεπτα αναμονής ανάμεσα σε pages (default: {PAGE_DELAY_SECONDS}).",
    )

    parser.add_argument(
        "--region-delay",
        type=float,
        default=REGION_DELAY_SECONDS,
        help=f"Δευτερόλεπτα αναμονής ανάμεσα σε regions (default: {REGION_DELAY_SECONDS}).",
    )

    parser.add_argument(
        "--product-key",
        choices=sorted(PRODUCT_KEY_POLICIES),
        default=DEFAULT_PRODUCT_KEY,
        help=(
            "Ποια πεδία ορίζουν ένα product μέσα σε ένα service "
            f"(default: {DEFAULT_PRODUCT_KEY})."
        ),
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed για την τυχαία επιλογή ανάμεσα σε ισόβαθμα regions.",
    )

    parser.add_argument(
        "--skip-empty-arm-sku",
        action="store_true",
        help="Προσθέτει armSkuName ne '' στο φίλτρο του API.",
    )

    parser.add_argument(
        "--trace-path",
        default=None,
        help="Αν δοθεί, γράφει JSONL trace των φάσεων του run.",
    )

    parser.add_argument(
        "--list",
        action="store_true",
        help="Εμφανίζει τα υπάρχοντα region catalogs και τερματίζει (χωρίς network).",
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Επίπεδο logging (default: INFO).",
    )

    return parser.parse_args(argv)


def _print_inventory(output_dir: str) -> None:
    entries = list_catalogs(output_dir)
    if not entries:
        console.print(f"(κανένας region catalog στο '{output_dir}')")
        return

    console.print(f"Βρέθηκαν {len(entries)} region catalogs στο '{output_dir}':\n")
    for e in entries:
        warn = f" [yellow]warning={e['warning']}[/yellow]" if e.get("warning") else ""
        console.print(
            f"- {e['region']} "
            f"families={e['families']} services={e['services']} products={e['products']} "
            f"fetched_at={e.get('fetched_at')}{warn}"
        )


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )
    logger = logging.getLogger("azure_product_catalog")
    logger.debug("CLI arguments: %s", args)

    if args.list:
        _print_inventory(args.output_dir)
        return 0

    settings = CatalogSettings(
        output_dir=args.output_dir,
        regions=parse_regions(args.regions),
        batch_size=args.batch_size,
        page_delay=args.page_delay,
        region_delay=args.region_delay,
        product_key=args.product_key,
        skip_empty_arm_sku=args.skip_empty_arm_sku,
        seed=args.seed,
    )
    run_trace = build_run_trace(args.trace_path)

    console.print("[bold]Azure Product Catalog[/bold]\n")
    try:
        summary = run_catalog_refresh(settings, trace=run_trace)
    except CatalogError as ex:
        logger.error("Run aborted: %s", ex)
        console.print(f"[red]Run aborted: {ex}[/red]")
        return 1

    console.print(
        f"[green]Fetched {len(summary.fetched_regions)} regions "
        f"({', '.join(summary.fetched_regions)}); merged {len(summary.merged_regions)} regions "
        f"→ {summary.merged_path}[/green]"
    )
    console.print(
        f"families={summary.families} services={summary.services} products={summary.products}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
