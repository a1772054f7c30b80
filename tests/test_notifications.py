"""Tests for order notification emails."""

import logging

import pytest
import requests

from notifications import ADMIN, CUSTOMER, NotificationService, format_dzd, render_order_email

ORDER = {
    "order_number": "ORD-1700000000000ABCD",
    "customer_name": "Amine <script>",
    "customer_phone": "0551234567",
    "customer_email": "amine@example.dz",
    "customer_address": "12 Rue Didouche Mourad, Alger Centre",
    "wilaya_name": "Alger",
    "shipping_type": "home_delivery",
    "subtotal": 10000,
    "shipping_cost": 800,
    "total": 10800,
    "items": [{"name": "Viper V3 Pro", "price": 5000, "quantity": 2, "size": "One Size", "color": "Black"}],
    "created_at": "2025-03-10T09:30:00",
}


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, response=None, error=None):
        self.calls = []
        self.response = response or FakeResponse()
        self.error = error

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response


class TestRender:
    def test_admin_message(self):
        msg = render_order_email(ORDER, ADMIN, "admin@bytek.dz", app_url="https://shop.example")

        assert msg.to == "admin@bytek.dz"
        assert msg.subject == "New Order: ORD-1700000000000ABCD"
        assert "https://shop.example/admin/orders" in msg.text
        assert "Total: 10 800 DZD" in msg.text
        assert "- Viper V3 Pro (Qty: 2) - 10 000 DZD" in msg.text

    def test_customer_message_links_tracking(self):
        msg = render_order_email(ORDER, CUSTOMER, "amine@example.dz", app_url="https://shop.example")

        assert msg.subject.startswith("Order confirmed")
        assert "https://shop.example/track-order?order=ORD-1700000000000ABCD" in msg.text
        assert "cash on delivery" in msg.html

    def test_html_is_escaped(self):
        msg = render_order_email(ORDER, ADMIN, "admin@bytek.dz")
        assert "<script>" not in msg.html
        assert "&lt;script&gt;" in msg.html

    def test_rendering_is_pure(self):
        assert render_order_email(ORDER, ADMIN, "a@b.dz") == render_order_email(ORDER, ADMIN, "a@b.dz")

    def test_unknown_role(self):
        with pytest.raises(ValueError):
            render_order_email(ORDER, "courier", "x@y.dz")

    def test_format_dzd(self):
        assert format_dzd(1234567) == "1 234 567 DZD"
        assert format_dzd(None) == "0 DZD"


class TestSend:
    def test_skipped_without_api_key(self, caplog):
        session = FakeSession()
        service = NotificationService(api_key=None, admin_email="admin@bytek.dz", session=session)

        with caplog.at_level(logging.WARNING, logger="notifications"):
            assert service.notify(ORDER, ADMIN) is False
        assert session.calls == []
        assert "RESEND_API_KEY not set" in caplog.text

    def test_posts_to_resend(self):
        session = FakeSession()
        service = NotificationService(api_key="re_test", admin_email="admin@bytek.dz", session=session)

        assert service.notify_new_order(ORDER) == {ADMIN: True, CUSTOMER: True}
        recipients = [kwargs["json"]["to"] for _, kwargs in session.calls]
        assert recipients == [["admin@bytek.dz"], ["amine@example.dz"]]
        assert session.calls[0][1]["headers"]["Authorization"] == "Bearer re_test"

    def test_failure_is_logged_not_raised(self, caplog):
        session = FakeSession(error=requests.ConnectionError("boom"))
        service = NotificationService(api_key="re_test", admin_email="admin@bytek.dz", session=session)

        with caplog.at_level(logging.ERROR, logger="notifications"):
            assert service.notify_new_order(ORDER) == {ADMIN: False, CUSTOMER: False}
        assert "Failed to send email" in caplog.text

    def test_http_error_status(self):
        service = NotificationService(api_key="re_test", admin_email="admin@bytek.dz", session=FakeSession(FakeResponse(500)))
        assert service.notify(ORDER, ADMIN) is False

    def test_customer_without_email_is_skipped(self):
        session = FakeSession()
        service = NotificationService(api_key="re_test", admin_email="admin@bytek.dz", session=session)

        result = service.notify_new_order({**ORDER, "customer_email": None})
        assert result == {ADMIN: True, CUSTOMER: False}
        assert len(session.calls) == 1

    def test_admin_email_from_database(self, mongo):
        mongo["user"].insert_one({"name": "Boss", "email": "boss@bytek.dz", "is_admin": True})
        service = NotificationService(api_key="re_test", admin_email=None, session=FakeSession())

        assert service.resolve_admin_email() == "boss@bytek.dz"
