"""Order helpers: numbering, line-item snapshots, legacy adapters, tracking and stats."""
import secrets
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import quote

from catalog import is_low_stock, total_stock
from schemas import OrderItem

TRACKING_URL = "https://suivi.ecotrack.dz/?tracking={}"
REVENUE_DAYS = 7
RECENT_ORDERS = 5


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}{secrets.token_hex(2).upper()}"


def normalize_order_number(value: str) -> str:
    return value.strip().upper()


def build_order_items(lines: Iterable[Any]) -> List[OrderItem]:
    """Freeze cart lines into order items; later price edits never reach them."""
    return [
        OrderItem(
            id=line.product.id,
            name=line.product.name,
            image=line.product.image,
            price=line.product.price,
            quantity=line.quantity,
            size=line.size,
            color=line.color,
            subtotal=line.subtotal,
        )
        for line in lines
    ]


def normalize_order_items(items: Any) -> List[Dict[str, Any]]:
    """
    Read-time adapter for stored line items.

    Older orders used productId/productName/productImage/selectedSize/selectedColor
    and may lack a subtotal.
    """
    if not isinstance(items, list):
        return []
    normalized = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        price = item.get("price") or 0
        quantity = item.get("quantity") or 1
        normalized.append({
            "id": item.get("id") or item.get("productId"),
            "name": item.get("name") or item.get("productName"),
            "image": item.get("image") or item.get("productImage"),
            "price": price,
            "quantity": quantity,
            "size": item.get("size") or item.get("selectedSize"),
            "color": item.get("color") or item.get("selectedColor"),
            "subtotal": item.get("subtotal") or price * quantity,
        })
    return normalized


def normalize_order(order: Mapping[str, Any]) -> Dict[str, Any]:
    doc = dict(order)
    doc["items"] = normalize_order_items(doc.get("items"))
    return doc


def tracking_url(tracking_number: Optional[str]) -> Optional[str]:
    if not tracking_number:
        return None
    return TRACKING_URL.format(quote(tracking_number, safe=""))


def public_tracking_view(order: Mapping[str, Any]) -> Dict[str, Any]:
    """The fields a customer sees when looking an order up by number."""
    items = normalize_order_items(order.get("items"))
    return {
        "order_number": order["order_number"],
        "customer_name": order.get("customer_name"),
        "status": order.get("status"),
        "tracking_number": order.get("tracking_number"),
        "tracking_url": tracking_url(order.get("tracking_number")),
        "estimated_delivery": order.get("estimated_delivery"),
        "total": order.get("total"),
        "created_at": order.get("created_at"),
        "items": [{"name": i["name"], "quantity": i["quantity"], "price": i["price"]} for i in items],
    }


# ----------------------- Dashboard -----------------------
def _order_day(value: Any) -> Optional[date]:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).date()


def revenue_series(orders: Iterable[Mapping[str, Any]], today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Revenue and order count per day over the last week, cancelled orders excluded."""
    today = today or datetime.now(timezone.utc).date()
    days = [today - timedelta(days=REVENUE_DAYS - 1 - i) for i in range(REVENUE_DAYS)]
    series = {d: {"date": d.isoformat(), "revenue": 0.0, "orders": 0} for d in days}
    for order in orders:
        if order.get("status") == "cancelled":
            continue
        bucket = series.get(_order_day(order.get("created_at")))
        if bucket is not None:
            bucket["revenue"] += order.get("total") or 0
            bucket["orders"] += 1
    return [series[d] for d in days]


def dashboard_stats(orders: List[Mapping[str, Any]], products: List[Mapping[str, Any]], today: Optional[date] = None) -> Dict[str, Any]:
    def count(status):
        return sum(1 for o in orders if o.get("status") == status)

    delivered_revenue = sum(o.get("total") or 0 for o in orders if o.get("status") == "delivered")
    low_stock = [
        {"id": p.get("id"), "name": p.get("name"), "image": p.get("image"), "stock": total_stock(p)}
        for p in products
        if is_low_stock(p)
    ]
    recent = sorted(orders, key=lambda o: str(o.get("created_at") or ""), reverse=True)[:RECENT_ORDERS]
    return {
        "products": len(products),
        "orders": len(orders),
        "pending_orders": count("pending"),
        "confirmed_orders": count("confirmed"),
        "delivered_orders": count("delivered"),
        "total_revenue": delivered_revenue,
        "low_stock_products": low_stock,
        "revenue_chart": revenue_series(orders, today),
        "recent_orders": [
            {
                "id": o.get("id"),
                "order_number": o.get("order_number"),
                "customer_name": o.get("customer_name"),
                "total": o.get("total"),
                "status": o.get("status"),
                "created_at": o.get("created_at"),
            }
            for o in recent
        ],
    }
