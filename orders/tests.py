from datetime import datetime
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core import mail
from django.core.cache import cache
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from catalog.models import Category, Product
from core.models import Branch
from notifications.messages import NotificationResult
from orders.models import Customer, Order
from orders.services import estimate_ready_at, generate_order_number, upsert_customer


@override_settings(NOTIFICATIONS_ASYNC=False, VIBER_BOT_TOKEN="")
class OrderApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.admin = get_user_model().objects.create_user(username="manager", password="pass1234", is_staff=True)

        self.center = Branch.objects.create(remote_storage_id="1", name="Центр", address="вул. Хрещатик, 1")
        self.podil = Branch.objects.create(remote_storage_id="2", name="Поділ", pickup_available=True)
        category = Category.objects.create(name="Сири", sort_order=1)
        self.cheese = Product.objects.create(category=category, name="Сир пармезан", price=Decimal("155.50"))
        self.beer = Product.objects.create(category=category, name="Пиво світле", display_name="Світле", price=Decimal("42.00"))
        self.hidden = Product.objects.create(category=category, name="Архів", price=Decimal("1.00"), is_active=False)

    def _payload(self, **overrides):
        payload = {
            "customer_name": "Олена",
            "customer_email": "olena@example.com",
            "customer_phone": "+38 (050) 123-45-67",
            "fulfillment": "delivery",
            "delivery_address": "вул. Сагайдачного, 5",
            "delivery_fee": "50.00",
            "items": [
                {"product": str(self.cheese.id), "quantity": "0.5"},
                {"product": str(self.beer.id), "quantity": "2"},
            ],
        }
        payload.update(overrides)
        return payload

    def _create(self, **overrides):
        with self.captureOnCommitCallbacks(execute=True):
            return self.client.post("/api/v1/orders/", self._payload(**overrides), format="json")

    def test_checkout_computes_totals_from_catalog_prices(self):
        response = self._create(items=[{"product": str(self.cheese.id), "quantity": "0.5", "price": "0.01"}])

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["subtotal"], "77.75")
        self.assertEqual(payload["delivery_fee"], "50.00")
        self.assertEqual(payload["total"], "127.75")
        self.assertEqual(payload["status"], "pending")
        self.assertTrue(payload["order_number"].startswith("ORD"))
        self.assertEqual(payload["items"][0]["unit_price"], "155.50")
        self.assertIsNotNone(payload["estimated_ready_at"])

    def test_checkout_snapshots_display_name_and_reuses_customer(self):
        Customer.objects.create(name="Old name", email="olena@example.com")

        response = self._create()

        self.assertEqual(response.status_code, 201)
        self.assertEqual(Customer.objects.count(), 1)
        customer = Customer.objects.get()
        self.assertEqual(customer.name, "Олена")
        self.assertEqual(customer.phone, "+38 (050) 123-45-67")
        names = {item["product_name"] for item in response.json()["items"]}
        self.assertEqual(names, {"Сир пармезан", "Світле"})

    def test_pickup_uses_selected_branch_and_ignores_delivery_fee(self):
        response = self._create(fulfillment="pickup", pickup_branch=str(self.podil.id), delivery_address="ignored")

        self.assertEqual(response.status_code, 201)
        order = Order.objects.get(id=response.json()["id"])
        self.assertEqual(order.branch, self.podil)
        self.assertEqual(order.delivery_fee, Decimal("0"))
        self.assertEqual(order.delivery_address, "")

    def test_delivery_defaults_to_first_active_branch(self):
        response = self._create()

        self.assertEqual(Order.objects.get(id=response.json()["id"]).branch, self.podil)

    def test_delivery_requires_address(self):
        response = self._create(delivery_address="")

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertIn("delivery_address", payload["errors"])

    def test_checkout_requires_a_contact(self):
        response = self._create(customer_email="", customer_phone="")

        self.assertEqual(response.status_code, 400)
        self.assertIn("customer_phone", response.json()["errors"])

    def test_inactive_products_cannot_be_ordered(self):
        response = self._create(items=[{"product": str(self.hidden.id), "quantity": "1"}])

        self.assertEqual(response.status_code, 400)
        self.assertFalse(Order.objects.exists())

    def test_checkout_fails_without_any_branch(self):
        Branch.objects.update(is_active=False)

        response = self._create()

        self.assertEqual(response.status_code, 400)
        self.assertIn("pickup_branch", response.json()["errors"])

    def test_checkout_sends_confirmation_email_after_commit(self):
        with self.assertLogs("notifications", level="INFO") as logs:
            response = self._create()

        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ["olena@example.com"])
        self.assertIn(response.json()["order_number"], message.subject)
        self.assertIn("Сир пармезан", message.body)
        self.assertIn("Загальна сума: 211.75 UAH", message.body)
        self.assertTrue(any("Bot token not configured" in line for line in logs.output))

    def test_notification_failures_do_not_fail_checkout(self):
        with patch("notifications.email.send_mail", side_effect=RuntimeError("smtp down")):
            with self.assertLogs("notifications", level="ERROR") as logs:
                response = self._create()

        self.assertEqual(response.status_code, 201)
        self.assertTrue(any("order_email_send_failed" in line for line in logs.output))

    def test_order_list_is_staff_only(self):
        self._create()

        anonymous = self.client.get("/api/v1/orders/")
        self.assertEqual(anonymous.status_code, 401)

        self.client.force_authenticate(user=self.admin)
        response = self.client.get("/api/v1/orders/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)

    def test_status_change_notifies_customer(self):
        order_id = self._create().json()["id"]
        mail.outbox.clear()
        self.client.force_authenticate(user=self.admin)

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post(f"/api/v1/orders/{order_id}/status/", {"status": "confirmed"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "confirmed")
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn("підтверджено", mail.outbox[0].body)

    def test_unchanged_status_sends_nothing(self):
        order_id = self._create().json()["id"]
        mail.outbox.clear()
        self.client.force_authenticate(user=self.admin)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            self.client.post(f"/api/v1/orders/{order_id}/status/", {"status": "pending"}, format="json")

        self.assertEqual(callbacks, [])
        self.assertEqual(mail.outbox, [])

    def test_final_orders_cannot_change_status(self):
        order_id = self._create().json()["id"]
        Order.objects.filter(id=order_id).update(status=Order.Status.CANCELLED)
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(f"/api/v1/orders/{order_id}/status/", {"status": "confirmed"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("status", response.json()["errors"])

    def test_viber_confirmation_uses_normalized_phone(self):
        client = patch("notifications.viber.ViberClient.from_settings").start()
        self.addCleanup(patch.stopall)
        client.return_value.send_message.return_value = NotificationResult(success=True)

        self._create()

        receiver, text = client.return_value.send_message.call_args.args
        self.assertEqual(receiver, "380501234567")
        self.assertIn("Доставка за адресою", text)


class OrderServiceTests(TestCase):
    def test_delivery_estimate_after_closing_moves_to_next_opening(self):
        now = timezone.make_aware(datetime(2026, 3, 10, 21, 0))

        estimate = estimate_ready_at(Order.Fulfillment.DELIVERY, now=now)

        self.assertEqual(timezone.localtime(estimate).replace(tzinfo=None), datetime(2026, 3, 11, 10, 0))

    def test_pickup_estimate_within_business_hours(self):
        now = timezone.make_aware(datetime(2026, 3, 10, 21, 0))

        estimate = estimate_ready_at(Order.Fulfillment.PICKUP, now=now)

        self.assertEqual(timezone.localtime(estimate).replace(tzinfo=None), datetime(2026, 3, 10, 21, 30))

    def test_estimate_before_opening_moves_to_opening(self):
        now = timezone.make_aware(datetime(2026, 3, 10, 7, 0))

        estimate = estimate_ready_at(Order.Fulfillment.DELIVERY, now=now)

        self.assertEqual(timezone.localtime(estimate).replace(tzinfo=None), datetime(2026, 3, 10, 10, 0))

    def test_order_numbers_are_unique(self):
        now = timezone.make_aware(datetime(2026, 3, 10, 12, 34))
        branch = Branch.objects.create(name="B")
        first = generate_order_number(now=now)
        Order.objects.create(order_number=first, branch=branch, fulfillment="pickup", subtotal=0, total=0)

        with patch("orders.services.secrets.randbelow", side_effect=[int(first[-4:]), 42]):
            second = generate_order_number(now=now)

        self.assertTrue(first.startswith("ORD2603101234"))
        self.assertEqual(second, "ORD26031012340042")

    def test_upsert_customer_matches_by_phone_when_email_is_new(self):
        existing = Customer.objects.create(name="Ivan", phone="+380501112233")

        customer = upsert_customer("Ivan P.", email="ivan@example.com", phone="+380501112233")

        self.assertEqual(customer.id, existing.id)
        self.assertEqual(customer.email, "ivan@example.com")

    def test_upsert_customer_without_contact_returns_none(self):
        self.assertIsNone(upsert_customer("Anonymous"))
