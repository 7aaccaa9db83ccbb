import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1].parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from azure_product_catalog.taxonomy.model import PriceRecord


def make_record(
    family: str = "Compute",
    service_id: str = "svc1",
    product_id: str = "p1",
    sku: str = "S1",
    meter: str = "M1",
    *,
    service_name: str = "",
    product_name: str = "",
    meter_id: str = "",
) -> PriceRecord:
    return PriceRecord(
        service_family=family,
        service_id=service_id,
        service_name=service_name or f"{service_id} name",
        product_id=product_id,
        product_name=product_name or f"{product_id} name",
        sku_name=sku,
        meter_id=meter_id or f"{product_id}-{meter}",
        meter_name=meter,
    )


def make_item(
    family: str = "Compute",
    service_id: str = "svc1",
    product_id: str = "p1",
    sku: str = "S1",
    meter: str = "M1",
    region: str = "eastus",
) -> dict:
    return {
        "currencyCode": "USD",
        "tierMinimumUnits": 0.0,
        "retailPrice": 0.12,
        "unitPrice": 0.12,
        "armRegionName": region,
        "location": "US East",
        "effectiveStartDate": "2024-01-01T00:00:00Z",
        "meterId": f"{product_id}-{meter}",
        "meterName": meter,
        "productId": product_id,
        "skuId": f"{product_id}/{sku}",
        "productName": f"{product_id} name",
        "skuName": sku,
        "serviceName": f"{service_id} name",
        "serviceId": service_id,
        "serviceFamily": family,
        "unitOfMeasure": "1 Hour",
        "type": "Consumption",
        "isPrimaryMeterRegion": True,
        "armSkuName": "",
    }


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def item_factory():
    return make_item
