"""
Checkout pipeline: anti-automation gate, field validation, totals and order submission.
"""
import logging
import os
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

import jwt
from bson.objectid import ObjectId
from pymongo.errors import DuplicateKeyError

import database
from auth import JWT_ALGO, JWT_SECRET
from cart import Cart, CartLine
from catalog import release_stock, reserve_stock
from errors import (
    EmptyCartError,
    OutOfStockError,
    ShippingUnavailableError,
    SpamRejectedError,
    ValidationFailedError,
)
from orders import build_order_items, generate_order_number
from regions import get_region
from schemas import Order
from shipping import resolve_shipping_cost

logger = logging.getLogger(__name__)

MIN_FORM_DWELL_SECONDS = 5
FORM_TOKEN_TTL = timedelta(hours=24)
RESERVE_STOCK_ON_CHECKOUT = os.getenv("RESERVE_STOCK_ON_CHECKOUT", "false").lower() in ("1", "true", "yes")
ORDER_NUMBER_ATTEMPTS = 3

HONEYPOT_MESSAGE = "Invalid submission detected. Please try again."
TOO_FAST_MESSAGE = "Please take your time filling out the form."

PHONE_RE = re.compile(r"^(?:0|\+213)?[567]\d{8}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_WHITESPACE_RE = re.compile(r"\s")


# ----------------------- Anti-automation -----------------------
def issue_form_token(loaded_at: Optional[float] = None) -> str:
    """Sign the moment the checkout form became interactive."""
    loaded_at = time.time() if loaded_at is None else loaded_at
    exp = datetime.fromtimestamp(loaded_at, timezone.utc) + FORM_TOKEN_TTL
    return jwt.encode({"purpose": "checkout", "loaded_at": loaded_at, "exp": exp}, JWT_SECRET, algorithm=JWT_ALGO)


def read_form_token(token: Optional[str]) -> float:
    if not token:
        raise SpamRejectedError(HONEYPOT_MESSAGE)
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.InvalidTokenError:
        raise SpamRejectedError(HONEYPOT_MESSAGE)
    if payload.get("purpose") != "checkout" or not isinstance(payload.get("loaded_at"), (int, float)):
        raise SpamRejectedError(HONEYPOT_MESSAGE)
    return float(payload["loaded_at"])


def check_spam(honeypot: Optional[str], loaded_at: float, now: Optional[float] = None) -> None:
    """Reject submissions that fill the hidden field or arrive too fast."""
    if honeypot and honeypot.strip():
        raise SpamRejectedError(HONEYPOT_MESSAGE)
    now = time.time() if now is None else now
    if now - loaded_at < MIN_FORM_DWELL_SECONDS:
        raise SpamRejectedError(TOO_FAST_MESSAGE)


# ----------------------- Validation -----------------------
def normalize_phone(phone: str) -> str:
    return _WHITESPACE_RE.sub("", phone or "")


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_RE.match(normalize_phone(phone)))


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email))


def validate_checkout_form(
    full_name: str,
    phone: str,
    email: Optional[str],
    address: str,
    city: str,
    wilaya_id: Optional[int],
) -> Dict[str, str]:
    """Return every field error at once; an empty dict means the form is valid."""
    errors: Dict[str, str] = {}

    if not (full_name or "").strip():
        errors["full_name"] = "Full name is required"

    if not (phone or "").strip():
        errors["phone"] = "Phone number is required"
    elif not is_valid_phone(phone):
        errors["phone"] = "Please enter a valid Algerian phone number"

    if email and not is_valid_email(email):
        errors["email"] = "Please enter a valid email address"

    if not (address or "").strip():
        errors["address"] = "Address is required"

    if not (city or "").strip():
        errors["city"] = "City is required"

    if get_region(wilaya_id) is None:
        errors["wilaya_id"] = "Please select a wilaya"

    return errors


# ----------------------- Totals -----------------------
@dataclass(frozen=True)
class OrderTotals:
    subtotal: float
    shipping_cost: Optional[float]
    total: Optional[float]

    @property
    def is_complete(self) -> bool:
        return self.shipping_cost is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "shipping_cost": self.shipping_cost,
            "total": self.total,
            "is_complete": self.is_complete,
        }


def compute_totals(
    subtotal: float,
    wilaya_id: Optional[int],
    shipping_type: str,
    overrides: Optional[Mapping[int, Mapping[str, Any]]] = None,
) -> OrderTotals:
    shipping_cost = resolve_shipping_cost(wilaya_id, shipping_type, overrides)
    total = subtotal + shipping_cost if shipping_cost is not None else None
    return OrderTotals(subtotal=subtotal, shipping_cost=shipping_cost, total=total)


# ----------------------- Submission -----------------------
def _reserve_cart_stock(cart: Cart) -> List[CartLine]:
    reserved: List[CartLine] = []
    for line in cart.lines:
        if not reserve_stock(line.product.id, line.size, line.color, line.quantity):
            _release_lines(reserved)
            logger.warning("Stock reservation failed for %s (%s / %s)", line.product.id, line.size, line.color)
            raise OutOfStockError(line.product.id, line.size, line.color, line.quantity)
        reserved.append(line)
    return reserved


def _release_lines(lines: List[CartLine]) -> None:
    for line in lines:
        release_stock(line.product.id, line.size, line.color, line.quantity)


def _insert_order(order: Order) -> Tuple[Order, str]:
    """Insert the order, drawing a fresh order number if one is already taken."""
    for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
        try:
            return order, database.create_document("order", order)
        except DuplicateKeyError:
            if attempt == ORDER_NUMBER_ATTEMPTS:
                raise
            logger.warning("Order number %s already used, retrying", order.order_number)
            order = order.model_copy(update={"order_number": generate_order_number()})


def submit_order(
    cart: Cart,
    form: Mapping[str, Any],
    overrides: Mapping[int, Mapping[str, Any]],
    loaded_at: float,
    now: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Run the whole checkout and insert the order.

    The gate runs before field validation. Nothing is written unless every
    check passes; the cart is cleared only after the insert succeeds, and
    reserved stock is handed back if the insert fails.
    """
    check_spam(form.get("website"), loaded_at, now)

    errors = validate_checkout_form(
        full_name=form.get("full_name", ""),
        phone=form.get("phone", ""),
        email=form.get("email"),
        address=form.get("address", ""),
        city=form.get("city", ""),
        wilaya_id=form.get("wilaya_id"),
    )
    if errors:
        raise ValidationFailedError(errors)

    if len(cart) == 0:
        raise EmptyCartError()

    wilaya_id = form["wilaya_id"]
    shipping_type = form.get("shipping_type", "home_delivery")
    totals = compute_totals(cart.subtotal(), wilaya_id, shipping_type, overrides)
    if not totals.is_complete:
        raise ShippingUnavailableError(wilaya_id, shipping_type)

    reserved = _reserve_cart_stock(cart) if RESERVE_STOCK_ON_CHECKOUT else []

    try:
        address = form["address"].strip()
        city = form["city"].strip()
        order = Order(
            order_number=generate_order_number(),
            customer_name=form["full_name"].strip(),
            customer_phone=normalize_phone(form["phone"]),
            customer_email=form.get("email") or None,
            customer_address=f"{address}, {city}",
            city=city,
            wilaya_id=wilaya_id,
            wilaya_name=get_region(wilaya_id).name,
            shipping_type=shipping_type,
            shipping_cost=totals.shipping_cost,
            subtotal=totals.subtotal,
            total=totals.total,
            items=build_order_items(cart.lines),
            notes=(form.get("notes") or "").strip() or None,
        )
        order, order_id = _insert_order(order)
    except Exception:
        if reserved:
            logger.error("Order insert failed, releasing %d reserved line(s)", len(reserved))
            _release_lines(reserved)
        raise
    logger.info("Order %s created (%s, total %s DZD)", order.order_number, order_id, order.total)

    cart.clear()

    return database.serialize_doc(database.collection("order").find_one({"_id": ObjectId(order_id)}))
