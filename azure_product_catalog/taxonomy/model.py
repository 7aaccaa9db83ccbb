"""
Three-level product taxonomy: service family -> service -> product.

Flat Retail API rows are folded into a ``Taxonomy`` with ``insert``; whole
taxonomies (one per region) are folded together with ``merge``. Both use the
same identity rules:

- families are keyed by name,
- services are keyed by service id; the first registered Service shell wins,
- products are keyed by the configured product key policy; the last write wins.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

PRODUCT_KEY_PRODUCT = "product"
PRODUCT_KEY_PRODUCT_METER = "product-meter"
PRODUCT_KEY_PRODUCT_SKU_METER = "product-sku-meter"


@dataclass(frozen=True)
class PriceRecord:
    """One row of the ``Items`` array of a Retail Prices API page."""

    service_family: str
    service_id: str
    service_name: str
    product_id: str
    product_name: str
    sku_name: str
    meter_id: str
    meter_name: str
    # Not used by aggregation.
    arm_region_name: str = ""
    currency_code: str = ""
    retail_price: float = 0.0
    unit_price: float = 0.0
    unit_of_measure: str = ""
    type: str = ""
    effective_start_date: str = ""
    arm_sku_name: str = ""
    is_primary_meter_region: bool = False

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "PriceRecord":
        """
        Build a record from a raw API item.

        Raises ValueError when the item is not an object or lacks one of the
        identity fields (serviceFamily, serviceId, productId).
        """
        if not isinstance(item, Mapping):
            raise ValueError(f"price item is not an object: {type(item).__name__}")

        missing = [k for k in ("serviceFamily", "serviceId", "productId") if not item.get(k)]
        if missing:
            raise ValueError(f"price item lacks {', '.join(missing)}")

        def _s(key: str) -> str:
            v = item.get(key)
            return "" if v is None else str(v)

        return cls(
            service_family=_s("serviceFamily"),
            service_id=_s("serviceId"),
            service_name=_s("serviceName"),
            product_id=_s("productId"),
            product_name=_s("productName"),
            sku_name=_s("skuName"),
            meter_id=_s("meterId"),
            meter_name=_s("meterName"),
            arm_region_name=_s("armRegionName"),
            currency_code=_s("currencyCode"),
            retail_price=float(item.get("retailPrice") or 0.0),
            unit_price=float(item.get("unitPrice") or 0.0),
            unit_of_measure=_s("unitOfMeasure"),
            type=_s("type"),
            effective_start_date=_s("effectiveStartDate"),
            arm_sku_name=_s("armSkuName"),
            is_primary_meter_region=bool(item.get("isPrimaryMeterRegion")),
        )


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    sku_name: str = ""
    meter_id: str = ""
    meter_name: str = ""

    @classmethod
    def from_record(cls, record: PriceRecord) -> "Product":
        return cls(
            id=record.product_id,
            name=record.product_name,
            sku_name=record.sku_name,
            meter_id=record.meter_id,
            meter_name=record.meter_name,
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "sku_name": self.sku_name,
            "meter_id": self.meter_id,
            "meter_name": self.meter_name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Product":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            sku_name=str(data.get("sku_name") or ""),
            meter_id=str(data.get("meter_id") or ""),
            meter_name=str(data.get("meter_name") or ""),
        )


PRODUCT_KEY_POLICIES: Dict[str, Callable[[Product], str]] = {
    PRODUCT_KEY_PRODUCT: lambda p: p.id,
    PRODUCT_KEY_PRODUCT_METER: lambda p: f"{p.id}/{p.meter_id}",
    PRODUCT_KEY_PRODUCT_SKU_METER: lambda p: f"{p.id}/{p.sku_name}/{p.meter_name}",
}


def product_key(product: Product, policy: str = PRODUCT_KEY_PRODUCT_SKU_METER) -> str:
    try:
        return PRODUCT_KEY_POLICIES[policy](product)
    except KeyError:
        raise ValueError(f"Unknown product key policy: {policy}") from None


@dataclass
class Service:
    id: str
    name: str
    products: Dict[str, Product] = field(default_factory=dict)

    def add_product(self, key: str, product: Product) -> "Service":
        self.products[key] = product
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "products": {k: p.to_dict() for k, p in self.products.items()},
        }


@dataclass
class ServiceFamily:
    name: str
    services: Dict[str, Service] = field(default_factory=dict)

    def add_service(self, service: Service) -> Service:
        """Register ``service`` unless its id is known; return the registered instance."""
        existing = self.services.get(service.id)
        if existing is not None:
            return existing
        self.services[service.id] = service
        return service

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "services": {sid: s.to_dict() for sid, s in self.services.items()},
        }


@dataclass
class Taxonomy:
    """Root aggregate for one region fetch or one merge pass."""

    key_policy: str = PRODUCT_KEY_PRODUCT_SKU_METER
    families: Dict[str, ServiceFamily] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.key_policy not in PRODUCT_KEY_POLICIES:
            raise ValueError(f"Unknown product key policy: {self.key_policy}")

    def _family(self, name: str) -> ServiceFamily:
        family = self.families.get(name)
        if family is None:
            family = ServiceFamily(name=name)
            self.families[name] = family
        return family

    def insert(self, record: PriceRecord) -> "Taxonomy":
        family = self._family(record.service_family)
        service = family.add_service(Service(id=record.service_id, name=record.service_name))
        product = Product.from_record(record)
        service.add_product(product_key(product, self.key_policy), product)
        return self

    def insert_all(self, records: Iterable[PriceRecord]) -> "Taxonomy":
        for record in records:
            self.insert(record)
        return self

    def merge(self, other: "Taxonomy") -> "Taxonomy":
        """
        Fold ``other`` into ``self``.

        Products are re-keyed with ``self.key_policy``, so merging a taxonomy
        built under another policy gives the same result as inserting its rows.
        Services and products are copied, never shared with ``other``.
        """
        for src_family in other.families.values():
            family = self._family(src_family.name)
            for src_service in src_family.services.values():
                service = family.add_service(Service(id=src_service.id, name=src_service.name))
                for product in src_service.products.values():
                    service.add_product(product_key(product, self.key_policy), replace(product))
        return self

    # ---- persistence ---------------------------------------------------

    def serialize_ordered(self) -> List[Dict[str, Any]]:
        """Families sorted by name (ordinal); services/products in map order."""
        return [self.families[name].to_dict() for name in sorted(self.families)]

    @classmethod
    def from_serialized(
        cls,
        families: Iterable[Mapping[str, Any]],
        key_policy: str = PRODUCT_KEY_PRODUCT_SKU_METER,
    ) -> "Taxonomy":
        """
        Inverse of ``serialize_ordered``. Products are keyed with ``key_policy``;
        the keys stored in the file are not trusted.

        Raises ValueError/KeyError/TypeError on a structurally invalid payload.
        """
        taxonomy = cls(key_policy=key_policy)
        for fam in families:
            family = taxonomy._family(str(fam["name"]))
            services = fam.get("services") or {}
            if not isinstance(services, Mapping):
                raise ValueError(f"family '{family.name}': services must be an object")
            for sid, svc in services.items():
                service = family.add_service(Service(id=str(svc.get("id") or sid), name=str(svc.get("name") or "")))
                products = svc.get("products") or {}
                if not isinstance(products, Mapping):
                    raise ValueError(f"service '{service.id}': products must be an object")
                for prod in products.values():
                    product = Product.from_dict(prod)
                    service.add_product(product_key(product, key_policy), product)
        return taxonomy

    # ---- stats ---------------------------------------------------------

    @property
    def family_count(self) -> int:
        return len(self.families)

    @property
    def service_count(self) -> int:
        return sum(len(f.services) for f in self.families.values())

    @property
    def product_count(self) -> int:
        return sum(len(s.products) for f in self.families.values() for s in f.services.values())

    def get_service(self, family: str, service_id: str) -> Optional[Service]:
        fam = self.families.get(family)
        return fam.services.get(service_id) if fam else None
