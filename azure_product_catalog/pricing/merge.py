"""Fold per-region taxonomies into one global catalog."""

from __future__ import annotations

from typing import Iterable

from ..taxonomy.model import PRODUCT_KEY_PRODUCT_SKU_METER, Taxonomy


def merge_all(
    taxonomies: Iterable[Taxonomy],
    key_policy: str = PRODUCT_KEY_PRODUCT_SKU_METER,
) -> Taxonomy:
    """
    Merge every taxonomy into a fresh one.

    The result owns all of its Service/Product instances; the inputs are left
    untouched and can be merged again in any order.
    """
    merged = Taxonomy(key_policy=key_policy)
    for taxonomy in taxonomies:
        merged.merge(taxonomy)
    return merged
