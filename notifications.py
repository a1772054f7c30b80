"""
Order notification emails.

A single service covers both recipients (the store admin and the customer).
Rendering is a pure function of the order snapshot; sending goes through the
Resend HTTP API and is best-effort: failures are logged, never raised, so an
order is never rolled back because an email could not be delivered.
"""
import html
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

import requests

import database

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
EMAIL_FROM = os.getenv("EMAIL_FROM", "BytekStore <onboarding@resend.dev>")
APP_URL = os.getenv("APP_URL", "https://bytek-store.vercel.app")
STORE_NAME = "BytekStore"

ADMIN = "admin"
CUSTOMER = "customer"
SHIPPING_LABELS = {"home_delivery": "Home delivery", "stop_desk": "Stop desk pickup"}


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str


def format_dzd(amount: Any) -> str:
    return f"{float(amount or 0):,.0f}".replace(",", " ") + " DZD"


def _order_date(value: Any) -> str:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, datetime):
        return value.strftime("%B %d, %Y %H:%M")
    return ""


def _items_html(items) -> str:
    rows = []
    for item in items:
        quantity = item.get("quantity") or 1
        price = item.get("price") or 0
        variant = " / ".join(v for v in (item.get("size"), item.get("color")) if v)
        rows.append(
            "<tr>"
            f"<td>{html.escape(item.get('name') or 'Product')}"
            f"{'<br><small>' + html.escape(variant) + '</small>' if variant else ''}</td>"
            f"<td align=\"center\">{quantity}</td>"
            f"<td align=\"right\">{format_dzd(price)}</td>"
            f"<td align=\"right\"><strong>{format_dzd(price * quantity)}</strong></td>"
            "</tr>"
        )
    return "\n".join(rows)


def _items_text(items) -> str:
    return "\n".join(
        f"- {item.get('name') or 'Product'} (Qty: {item.get('quantity') or 1}) - "
        f"{format_dzd((item.get('price') or 0) * (item.get('quantity') or 1))}"
        for item in items
    )


def render_order_email(order: Mapping[str, Any], role: str, to: str, app_url: str = APP_URL) -> EmailMessage:
    """Build the subject, HTML and plain-text bodies for one recipient role."""
    if role not in (ADMIN, CUSTOMER):
        raise ValueError(f"Unknown recipient role: {role}")

    esc = html.escape
    items = order.get("items") or []
    number = order.get("order_number", "")
    placed = _order_date(order.get("created_at"))
    shipping_label = SHIPPING_LABELS.get(order.get("shipping_type"), order.get("shipping_type") or "")

    if role == ADMIN:
        subject = f"New Order: {number}"
        heading = "New Order Received!"
        intro = f"{esc(order.get('customer_name', ''))} just placed an order."
        link_text, link = "View order", f"{app_url}/admin/orders"
    else:
        subject = f"Order confirmed: {number}"
        heading = f"Thank you for your order, {order.get('customer_name', '')}!"
        intro = "We have received your order and will call you to confirm it. Payment is cash on delivery."
        link_text, link = "Track your order", f"{app_url}/track-order?order={number}"

    contact_rows = [
        ("Customer", order.get("customer_name")),
        ("Phone", order.get("customer_phone")),
        ("Email", order.get("customer_email")),
        ("Address", order.get("customer_address")),
        ("Wilaya", order.get("wilaya_name")),
        ("Delivery", shipping_label),
    ]
    contact_html = "\n".join(
        f"<tr><td><strong>{label}:</strong></td><td>{esc(str(value))}</td></tr>"
        for label, value in contact_rows
        if value
    )

    body_html = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>
<body style="font-family: Arial, sans-serif; background: #f3f4f6;">
<table width="600" align="center" cellpadding="16" cellspacing="0" style="background: #ffffff;">
<tr><td><h1>{esc(heading)}</h1><p>{intro}</p><p><strong>Order #{esc(number)}</strong></p></td></tr>
<tr><td><table width="100%">{contact_html}</table></td></tr>
<tr><td><table width="100%">
<thead><tr><th align="left">Product</th><th>Qty</th><th align="right">Price</th><th align="right">Total</th></tr></thead>
<tbody>
{_items_html(items)}
</tbody></table></td></tr>
<tr><td align="right">
<p>Subtotal: {format_dzd(order.get('subtotal'))}</p>
<p>Shipping: {format_dzd(order.get('shipping_cost'))}</p>
<p><strong>Total: {format_dzd(order.get('total'))}</strong></p>
</td></tr>
<tr><td><p><strong>Order placed:</strong> {esc(placed)}</p><p><a href="{esc(link)}">{link_text}</a></p></td></tr>
</table>
<p align="center"><small>{STORE_NAME}</small></p>
</body>
</html>"""

    text_lines = [heading, "", f"Order Number: {number}"]
    text_lines += [f"{label}: {value}" for label, value in contact_rows if value]
    text_lines += [
        "",
        "Order Items:",
        _items_text(items),
        "",
        f"Subtotal: {format_dzd(order.get('subtotal'))}",
        f"Shipping: {format_dzd(order.get('shipping_cost'))}",
        f"Total: {format_dzd(order.get('total'))}",
        f"Order placed: {placed}",
        "",
        f"{link_text}: {link}",
    ]

    return EmailMessage(to=to, subject=subject, html=body_html, text="\n".join(text_lines))


class NotificationService:
    def __init__(
        self,
        api_key: Optional[str] = RESEND_API_KEY,
        sender: str = EMAIL_FROM,
        admin_email: Optional[str] = ADMIN_EMAIL,
        app_url: str = APP_URL,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.sender = sender
        self.admin_email = admin_email
        self.app_url = app_url
        self.session = session or requests.Session()

    def resolve_admin_email(self) -> Optional[str]:
        if self.admin_email:
            return self.admin_email
        if database.db is None:
            return None
        admin = database.collection("user").find_one({"is_admin": True})
        return admin.get("email") if admin else None

    def recipient(self, order: Mapping[str, Any], role: str) -> Optional[str]:
        if role == ADMIN:
            return self.resolve_admin_email()
        return order.get("customer_email") or None

    def send(self, message: EmailMessage) -> bool:
        if not self.api_key:
            logger.warning("RESEND_API_KEY not set, skipping email '%s' to %s", message.subject, message.to)
            return False
        try:
            response = self.session.post(
                RESEND_URL,
                headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
                json={
                    "from": self.sender,
                    "to": [message.to],
                    "subject": message.subject,
                    "html": message.html,
                    "text": message.text,
                },
                timeout=10,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("Failed to send email '%s' to %s: %s", message.subject, message.to, e)
            return False
        logger.info("Email '%s' sent to %s", message.subject, message.to)
        return True

    def notify(self, order: Mapping[str, Any], role: str) -> bool:
        to = self.recipient(order, role)
        if not to:
            logger.info("No %s recipient for order %s, skipping email", role, order.get("order_number"))
            return False
        return self.send(render_order_email(order, role, to, self.app_url))

    def notify_new_order(self, order: Mapping[str, Any]) -> Dict[str, bool]:
        """Send both notifications for a freshly placed order."""
        results = {}
        for role in (ADMIN, CUSTOMER):
            try:
                results[role] = self.notify(order, role)
            except Exception:
                logger.exception("Notification to %s failed for order %s", role, order.get("order_number"))
                results[role] = False
        return results
