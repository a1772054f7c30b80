"""
Product catalog helpers: listing filters and sorting, variant stock, admin
product validation and the stock compare-and-decrement.
"""
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pymongo

import database
from errors import ValidationFailedError

logger = logging.getLogger(__name__)

CATEGORIES = [
    {"id": "all", "name": "All Products"},
    {"id": "mice", "name": "Mice"},
    {"id": "keyboards", "name": "Keyboards"},
    {"id": "mousepads", "name": "Mousepads"},
    {"id": "headsets", "name": "Headsets"},
    {"id": "ssds", "name": "SSDs"},
    {"id": "cpu", "name": "CPU"},
]

SORT_OPTIONS: Dict[str, List[Tuple[str, int]]] = {
    "name-asc": [("name", pymongo.ASCENDING)],
    "name-desc": [("name", pymongo.DESCENDING)],
    "price-asc": [("price", pymongo.ASCENDING)],
    "price-desc": [("price", pymongo.DESCENDING)],
    "rating-desc": [("rating", pymongo.DESCENDING)],
}
DEFAULT_SORT = "rating-desc"

LOW_STOCK_THRESHOLD = 5
UNTRACKED_VARIANT_STOCK = 999
MAX_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 5000
MAX_PRICE = 100_000_000


def build_product_query(
    category: Optional[str] = None,
    q: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    stock: Optional[str] = None,
    featured: Optional[bool] = None,
    include_archived: bool = False,
) -> Dict[str, Any]:
    filt: Dict[str, Any] = {}
    if category and category != "all":
        filt["category"] = category
    if q:
        pattern = {"$regex": re.escape(q), "$options": "i"}
        filt["$or"] = [{"name": pattern}, {"description": pattern}, {"category": pattern}]
    price: Dict[str, float] = {}
    if min_price is not None:
        price["$gte"] = min_price
    if max_price is not None:
        price["$lte"] = max_price
    if price:
        filt["price"] = price
    if stock == "in_stock":
        filt["in_stock"] = True
    elif stock == "out_of_stock":
        filt["in_stock"] = False
    if featured is not None:
        filt["featured"] = featured
    if not include_archived:
        filt["status"] = {"$ne": "archived"}
    return filt


def sort_keys(sort: Optional[str]) -> List[Tuple[str, int]]:
    return SORT_OPTIONS.get(sort or DEFAULT_SORT, SORT_OPTIONS[DEFAULT_SORT])


def variant_stock(product: Mapping[str, Any], size: str, color: str) -> int:
    return int((product.get("stock") or {}).get(size, {}).get(color, 0))


def total_stock(product: Mapping[str, Any]) -> int:
    return sum(int(qty) for by_color in (product.get("stock") or {}).values() for qty in by_color.values())


def is_low_stock(product: Mapping[str, Any]) -> bool:
    if not product.get("in_stock", True):
        return True
    return total_stock(product) <= LOW_STOCK_THRESHOLD


def build_stock_matrix(sizes: Sequence[str], colors: Sequence[str], total: int, track_inventory: bool = True) -> Dict[str, Dict[str, int]]:
    """Spread a total evenly over every size/color variant (at least 1 each)."""
    sizes = list(sizes) or ["One Size"]
    colors = list(colors) or ["Default"]
    if track_inventory:
        per_variant = max(1, total // (len(sizes) * len(colors)))
    else:
        per_variant = UNTRACKED_VARIANT_STOCK
    return {size: {color: per_variant for color in colors} for size in sizes}


def _bad_variant_name(name: str) -> bool:
    return not name or "." in name or name.startswith("$")


def validate_product_input(data: Mapping[str, Any]) -> None:
    """Raise ValidationFailedError with every problem in an admin product form."""
    errors: Dict[str, str] = {}

    name = (data.get("name") or "").strip()
    if not name:
        errors["name"] = "Please enter a product name"
    elif len(name) > MAX_NAME_LENGTH:
        errors["name"] = f"Product name must be less than {MAX_NAME_LENGTH} characters"

    price = data.get("price")
    if price is None or price <= 0:
        errors["price"] = "Please enter a valid price greater than 0"
    elif price > MAX_PRICE:
        errors["price"] = "Price must be less than 100,000,000 DZD"

    original_price = data.get("original_price")
    if original_price and price and original_price <= price:
        errors["original_price"] = "Compare at price must be higher than the sale price"

    if not data.get("images"):
        errors["images"] = "Please upload at least one product image"

    description = data.get("description")
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        errors["description"] = f"Description must be less than {MAX_DESCRIPTION_LENGTH} characters"

    for field in ("sizes", "colors"):
        if any(_bad_variant_name(v) for v in data.get(field) or []):
            errors[field] = f"{field.capitalize()} cannot be empty, contain '.' or start with '$'"

    if errors:
        raise ValidationFailedError(errors, "Invalid product")


# ----------------------- Stock reservation -----------------------
def _stock_path(size: str, color: str) -> str:
    return f"stock.{size}.{color}"


def _sync_in_stock(oid) -> None:
    """Recompute the in_stock flag from the variant counts."""
    products = database.collection("product")
    product = products.find_one({"_id": oid}, {"stock": 1})
    if product is not None:
        products.update_one({"_id": oid}, {"$set": {"in_stock": total_stock(product) > 0}})


def reserve_stock(product_id: str, size: str, color: str, quantity: int) -> bool:
    """
    Atomically take `quantity` units of one variant.

    Succeeds only if at least that many units remain at write time, so two
    checkouts racing for the last unit cannot both win.
    """
    oid = database.parse_object_id(product_id)
    if oid is None:
        return False
    path = _stock_path(size, color)
    res = database.collection("product").update_one(
        {"_id": oid, path: {"$gte": quantity}},
        {"$inc": {path: -quantity}},
    )
    if res.modified_count == 0:
        logger.warning("Could not reserve %d x %s (%s / %s)", quantity, product_id, size, color)
        return False
    _sync_in_stock(oid)
    return True


def release_stock(product_id: str, size: str, color: str, quantity: int) -> None:
    oid = database.parse_object_id(product_id)
    if oid is None:
        return
    database.collection("product").update_one({"_id": oid}, {"$inc": {_stock_path(size, color): quantity}})
    _sync_in_stock(oid)
