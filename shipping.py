"""
Shipping price resolution per wilaya and fulfillment mode.

An active override from the shipping_rate collection wins over the static
default from regions.py. None means "unknown": callers must show a
placeholder and block checkout, never treat it as free shipping.
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional

from regions import REGIONS, get_region

HOME_DELIVERY = "home_delivery"
STOP_DESK = "stop_desk"
SHIPPING_TYPES = (HOME_DELIVERY, STOP_DESK)

_OVERRIDE_FIELDS = {HOME_DELIVERY: "home_delivery_cost", STOP_DESK: "stop_desk_cost"}


def index_overrides(rates: Iterable[Mapping[str, Any]]) -> Dict[int, Mapping[str, Any]]:
    """Key active override rows by wilaya id. Inactive rows are dropped."""
    return {int(r["wilaya_id"]): r for r in rates if r.get("is_active", True)}


def resolve_shipping_cost(
    wilaya_id: Optional[int],
    shipping_type: str,
    overrides: Optional[Mapping[int, Mapping[str, Any]]] = None,
) -> Optional[float]:
    if shipping_type not in SHIPPING_TYPES:
        raise ValueError(f"Unknown shipping type: {shipping_type}")
    if wilaya_id is None:
        return None

    override = (overrides or {}).get(wilaya_id)
    if override is not None and override.get("is_active", True):
        return override[_OVERRIDE_FIELDS[shipping_type]]

    region = get_region(wilaya_id)
    if region is not None:
        return region.home_delivery if shipping_type == HOME_DELIVERY else region.stop_desk

    return None


def shipping_options(wilaya_id: Optional[int], overrides: Optional[Mapping[int, Mapping[str, Any]]] = None) -> Dict[str, Optional[float]]:
    """Prices for both modes, as shown next to the delivery choices."""
    return {mode: resolve_shipping_cost(wilaya_id, mode, overrides) for mode in SHIPPING_TYPES}


def merged_rates(rates: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    One row per wilaya for the admin rates screen.

    Stored rows (active or not) win; wilayas without a row show the static
    defaults and count as active.
    """
    stored = {int(r["wilaya_id"]): r for r in rates}
    merged = []
    for region in REGIONS:
        existing = stored.get(region.id)
        merged.append({
            "id": str(existing["_id"]) if existing and "_id" in existing else None,
            "wilaya_id": region.id,
            "wilaya_name": region.name,
            "home_delivery_cost": existing["home_delivery_cost"] if existing else region.home_delivery,
            "stop_desk_cost": existing["stop_desk_cost"] if existing else region.stop_desk,
            "is_active": existing.get("is_active", True) if existing else True,
        })
    return merged
