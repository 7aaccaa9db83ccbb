import json
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

from azure_product_catalog.config import CatalogSettings
from azure_product_catalog.errors import CatalogConfigError, CatalogStateError, RetailApiError
from azure_product_catalog.pipeline import run_catalog_refresh
from azure_product_catalog.pricing.retail_api import RetailCatalogFetcher
from azure_product_catalog.pricing.store import load_region_log, save_region_log, write_region_catalog
from azure_product_catalog.taxonomy.model import Taxonomy
from azure_product_catalog.utils.trace import build_run_trace

T0 = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)


class FakeFetcher:
    """Returns canned taxonomies; raises for regions mapped to an exception."""

    def __init__(self, by_region):
        self.by_region = by_region
        self.calls = []

    def fetch(self, region):
        self.calls.append(region)
        result = self.by_region[region]
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        raise AssertionError("pipeline must not close an injected fetcher")


def _settings(tmp_path: Path, regions, **kwargs) -> CatalogSettings:
    kwargs.setdefault("region_delay", 0.0)
    return CatalogSettings(output_dir=str(tmp_path), regions=list(regions), **kwargs)


def test_full_run_writes_region_files_log_and_merge(tmp_path: Path, record_factory):
    fetcher = FakeFetcher(
        {
            "eastus": Taxonomy().insert(record_factory("Compute", "svc1", "p1")),
            "westus": Taxonomy().insert(record_factory("Storage", "svc2", "p2")),
        }
    )
    summary = run_catalog_refresh(
        _settings(tmp_path, ["westus", "eastus"]), fetcher=fetcher, now=lambda: T0
    )

    assert fetcher.calls == ["eastus", "westus"]
    assert summary.fetched_regions == ["eastus", "westus"]
    assert summary.merged_regions == ["eastus", "westus"]
    assert (summary.families, summary.services, summary.products) == (2, 2, 2)

    assert (tmp_path / "products-eastus.json").exists()
    assert (tmp_path / "products-westus.json").exists()
    merged = json.loads((tmp_path / "products.json").read_text(encoding="utf-8"))
    assert [f["name"] for f in merged] == ["Compute", "Storage"]
    assert load_region_log(str(tmp_path)) == {"eastus": T0, "westus": T0}


def test_merge_includes_regions_not_fetched_this_run(tmp_path: Path, record_factory):
    write_region_catalog(
        str(tmp_path), "japaneast", Taxonomy().insert(record_factory("Storage", "svcS", "blob", "Hot", "Data Stored"))
    )
    fetcher = FakeFetcher(
        {"eastus": Taxonomy().insert(record_factory("Storage", "svcS", "blob", "Cool", "Data Stored"))}
    )

    summary = run_catalog_refresh(_settings(tmp_path, ["eastus"]), fetcher=fetcher, now=lambda: T0)

    assert summary.merged_regions == ["eastus", "japaneast"]
    merged = json.loads((tmp_path / "products.json").read_text(encoding="utf-8"))
    assert len(merged) == 1
    products = merged[0]["services"]["svcS"]["products"]
    assert set(products) == {"blob/Hot/Data Stored", "blob/Cool/Data Stored"}


def test_failed_region_leaves_file_and_log_untouched(tmp_path: Path, record_factory, item_factory):
    earlier = T0 - timedelta(days=3)
    save_region_log(str(tmp_path), {"eastus": earlier})
    old_file = write_region_catalog(str(tmp_path), "eastus", Taxonomy().insert(record_factory(product_id="old")))
    old_content = Path(old_file).read_text(encoding="utf-8")

    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(
                200, json={"Items": [item_factory()], "NextPageLink": "https://prices.azure.com/api/retail/prices?$skip=100"}
            )
        return httpx.Response(500)

    fetcher = RetailCatalogFetcher(httpx.Client(transport=httpx.MockTransport(handler)), sleep=lambda s: None)

    with pytest.raises(RetailApiError):
        run_catalog_refresh(_settings(tmp_path, ["eastus"]), fetcher=fetcher, now=lambda: T0)

    assert Path(old_file).read_text(encoding="utf-8") == old_content
    assert load_region_log(str(tmp_path)) == {"eastus": earlier}
    assert not (tmp_path / "products.json").exists()


def test_failure_without_prior_state_writes_nothing(tmp_path: Path):
    fetcher = FakeFetcher({"eastus": RetailApiError("boom", region="eastus", url="u", status_code=500)})

    with pytest.raises(RetailApiError):
        run_catalog_refresh(_settings(tmp_path, ["eastus"]), fetcher=fetcher)

    assert list(tmp_path.iterdir()) == []


def test_regions_completed_before_a_failure_are_kept(tmp_path: Path, record_factory):
    fetcher = FakeFetcher(
        {
            "eastus": Taxonomy().insert(record_factory()),
            "westus": RetailApiError("boom", region="westus", url="u"),
        }
    )
    with pytest.raises(RetailApiError):
        run_catalog_refresh(_settings(tmp_path, ["eastus", "westus"]), fetcher=fetcher, now=lambda: T0)

    assert (tmp_path / "products-eastus.json").exists()
    assert not (tmp_path / "products-westus.json").exists()
    assert load_region_log(str(tmp_path)) == {"eastus": T0}


def test_batch_prefers_stale_regions(tmp_path: Path, record_factory):
    save_region_log(
        str(tmp_path),
        {"eastus": T0 - timedelta(days=1), "westus": T0 - timedelta(days=5)},
    )
    fetcher = FakeFetcher({r: Taxonomy() for r in ["eastus", "westus", "brazilsouth"]})

    summary = run_catalog_refresh(
        _settings(tmp_path, ["eastus", "westus", "brazilsouth"], batch_size=2),
        fetcher=fetcher,
        rng=random.Random(7),
        now=lambda: T0,
    )

    assert summary.selected_regions == ["brazilsouth", "westus"]
    assert not (tmp_path / "products-eastus.json").exists()


def test_region_delay_between_regions_only(tmp_path: Path):
    sleeps = []
    fetcher = FakeFetcher({r: Taxonomy() for r in ["a", "b", "c"]})

    run_catalog_refresh(
        _settings(tmp_path, ["a", "b", "c"], region_delay=2.0), fetcher=fetcher, sleep=sleeps.append
    )
    assert sleeps == [2.0, 2.0]


def test_missing_output_dir_fails_before_fetch(tmp_path: Path):
    fetcher = FakeFetcher({})
    with pytest.raises(CatalogConfigError):
        run_catalog_refresh(_settings(tmp_path / "nope", ["eastus"]), fetcher=fetcher)
    assert fetcher.calls == []


def test_corrupt_log_stops_the_run(tmp_path: Path):
    (tmp_path / "log.json").write_text("{broken", encoding="utf-8")
    fetcher = FakeFetcher({})
    with pytest.raises(CatalogStateError):
        run_catalog_refresh(_settings(tmp_path, ["eastus"]), fetcher=fetcher)
    assert fetcher.calls == []


def test_corrupt_region_file_stops_the_merge(tmp_path: Path):
    (tmp_path / "products-westus.json").write_text("[]", encoding="utf-8")
    fetcher = FakeFetcher({"eastus": Taxonomy()})

    with pytest.raises(CatalogStateError):
        run_catalog_refresh(_settings(tmp_path, ["eastus"]), fetcher=fetcher)
    assert not (tmp_path / "products.json").exists()


def test_trace_records_run_phases(tmp_path: Path, record_factory):
    trace_path = tmp_path / "trace" / "run.jsonl"
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    fetcher = FakeFetcher({"eastus": Taxonomy().insert(record_factory())})

    run_catalog_refresh(
        _settings(out_dir, ["eastus"]), fetcher=fetcher, trace=build_run_trace(trace_path)
    )

    events = [json.loads(line) for line in trace_path.read_text(encoding="utf-8").splitlines()]
    assert [e["phase"] for e in events] == ["batch_selected", "region_fetched", "merge_completed"]
    assert events[1]["region"] == "eastus"
    assert events[2]["payload"]["products"] == 1


def test_merge_rekeys_files_written_under_another_policy(tmp_path: Path, record_factory):
    rec = record_factory("Compute", "svc1", "p1", "S1", "M1")
    write_region_catalog(str(tmp_path), "japaneast", Taxonomy(key_policy="product").insert(rec))
    fetcher = FakeFetcher({"eastus": Taxonomy().insert(rec)})

    summary = run_catalog_refresh(_settings(tmp_path, ["eastus"]), fetcher=fetcher, now=lambda: T0)

    merged = json.loads((tmp_path / "products.json").read_text(encoding="utf-8"))
    assert list(merged[0]["services"]["svc1"]["products"]) == ["p1/S1/M1"]
    assert summary.products == 1
