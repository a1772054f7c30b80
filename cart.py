"""Shopping cart keyed by product, size and color, persisted on every change."""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

import database

logger = logging.getLogger(__name__)

LineKey = Tuple[str, str, str]


@dataclass
class CartProduct:
    """The slice of a product the cart needs to price and display a line."""

    id: str
    name: str
    price: float
    image: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "price": self.price, "image": self.image}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartProduct":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            price=float(data["price"]),
            image=data.get("image"),
        )


@dataclass
class CartLine:
    product: CartProduct
    quantity: int
    size: str
    color: str

    @property
    def key(self) -> LineKey:
        return (self.product.id, self.size, self.color)

    @property
    def subtotal(self) -> float:
        return self.product.price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": self.product.to_dict(),
            "quantity": self.quantity,
            "size": self.size,
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLine":
        return cls(
            product=CartProduct.from_dict(data["product"]),
            quantity=int(data["quantity"]),
            size=data["size"],
            color=data["color"],
        )


class CartStore(Protocol):
    def load(self) -> Optional[str]: ...

    def save(self, payload: str) -> None: ...


class MemoryCartStore:
    def __init__(self, payload: Optional[str] = None):
        self.payload = payload

    def load(self) -> Optional[str]:
        return self.payload

    def save(self, payload: str) -> None:
        self.payload = payload


class FileCartStore:
    """Keeps the cart in a JSON file, replaced atomically on each save."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[str]:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8")

    def save(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".cart_", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


class MongoCartStore:
    """One document per client cart in the "cart" collection."""

    def __init__(self, cart_id: str):
        self.cart_id = cart_id

    def load(self) -> Optional[str]:
        doc = database.collection("cart").find_one({"cart_id": self.cart_id})
        return doc.get("payload") if doc else None

    def save(self, payload: str) -> None:
        database.collection("cart").update_one(
            {"cart_id": self.cart_id},
            {"$set": {"payload": payload, "updated_at": datetime.now(timezone.utc)}},
            upsert=True,
        )


class Cart:
    """
    Owned cart aggregator.

    Construction rehydrates from the store. A payload that cannot be decoded is
    logged and discarded, so the cart starts empty instead of failing.
    """

    def __init__(self, store: CartStore):
        self._store = store
        self._lines: List[CartLine] = []
        self._rehydrate()

    def _rehydrate(self) -> None:
        payload = self._store.load()
        if not payload:
            return
        try:
            raw = json.loads(payload)
            lines = [CartLine.from_dict(item) for item in raw]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Failed to parse stored cart, starting empty: %s", e)
            return
        for line in lines:
            if line.quantity < 1:
                continue
            existing = self._find(line.key)
            if existing is not None:
                existing.quantity += line.quantity
            else:
                self._lines.append(line)

    def _find(self, key: LineKey) -> Optional[CartLine]:
        for line in self._lines:
            if line.key == key:
                return line
        return None

    def _persist(self) -> None:
        self._store.save(self.serialize())

    def serialize(self) -> str:
        return json.dumps([line.to_dict() for line in self._lines], ensure_ascii=False)

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def get_line(self, product_id: str, size: str, color: str) -> Optional[CartLine]:
        return self._find((product_id, size, color))

    def add_item(self, product: CartProduct, quantity: int, size: str, color: str) -> CartLine:
        if quantity < 1:
            raise ValueError("Quantity must be at least 1")
        line = self._find((product.id, size, color))
        if line is not None:
            line.quantity += quantity
        else:
            line = CartLine(product=product, quantity=quantity, size=size, color=color)
            self._lines.append(line)
        self._persist()
        return line

    def remove_item(self, product_id: str, size: str, color: str) -> None:
        key = (product_id, size, color)
        remaining = [line for line in self._lines if line.key != key]
        if len(remaining) == len(self._lines):
            return
        self._lines = remaining
        self._persist()

    def set_quantity(self, product_id: str, size: str, color: str, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(product_id, size, color)
            return
        line = self._find((product_id, size, color))
        if line is None:
            return
        line.quantity = quantity
        self._persist()

    def clear(self) -> None:
        self._lines = []
        self._persist()

    def subtotal(self) -> float:
        return sum(line.subtotal for line in self._lines)

    def total_items(self) -> int:
        return sum(line.quantity for line in self._lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [dict(line.to_dict(), subtotal=line.subtotal) for line in self._lines],
            "total_items": self.total_items(),
            "subtotal": self.subtotal(),
        }
