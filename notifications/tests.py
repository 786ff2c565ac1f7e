from decimal import Decimal
from unittest import mock

import requests
from django.test import SimpleTestCase, TestCase, override_settings

from catalog.models import Category, Product
from core.models import Branch
from notifications import dispatch
from notifications.messages import NotificationResult, status_text
from notifications.viber import ViberClient, normalize_receiver
from orders.models import Customer, Order, OrderItem


class ViberClientTests(SimpleTestCase):
    def _client(self, token="bot-token"):
        session = mock.Mock()
        return ViberClient(token, "https://viber.test/send", "Shop", timeout=2, session=session), session

    def test_receiver_is_digits_only(self):
        self.assertEqual(normalize_receiver("+38 (097) 324-46-68"), "380973244668")
        self.assertEqual(normalize_receiver(None), "")

    def test_send_message_posts_auth_header_and_sender(self):
        client, session = self._client()
        session.post.return_value.json.return_value = {"status": 0, "status_message": "ok"}

        result = client.send_message("380973244668", "hello")

        self.assertEqual(result, NotificationResult(success=True))
        kwargs = session.post.call_args.kwargs
        self.assertEqual(kwargs["headers"], {"X-Viber-Auth-Token": "bot-token"})
        self.assertEqual(kwargs["json"]["sender"], {"name": "Shop"})
        self.assertEqual(kwargs["timeout"], 2)

    def test_in_band_failure_is_reported(self):
        client, session = self._client()
        session.post.return_value.json.return_value = {"status": 6, "status_message": "notSubscribed"}

        with self.assertLogs("notifications.viber", level="WARNING"):
            result = client.send_message("380973244668", "hello")

        self.assertEqual(result, NotificationResult(success=False, error="notSubscribed"))

    def test_network_error_is_reported(self):
        client, session = self._client()
        session.post.side_effect = requests.ConnectionError("no route")

        with self.assertLogs("notifications.viber", level="WARNING"):
            result = client.send_message("380973244668", "hello")

        self.assertFalse(result.success)
        self.assertIn("no route", result.error)

    def test_missing_token_skips_request(self):
        client, session = self._client(token="")

        with self.assertLogs("notifications.viber", level="WARNING"):
            result = client.send_message("380973244668", "hello")

        self.assertEqual(result.error, "Bot token not configured")
        session.post.assert_not_called()


class DispatchTests(TestCase):
    def setUp(self):
        branch = Branch.objects.create(name="Поділ")
        category = Category.objects.create(name="Сири")
        product = Product.objects.create(category=category, name="Бринза", price=Decimal("90.00"))
        self.order = Order.objects.create(
            order_number="ORD26031012340001",
            customer=Customer.objects.create(name="Ivan", phone="+380501112233"),
            branch=branch,
            fulfillment=Order.Fulfillment.PICKUP,
            status=Order.Status.READY,
            subtotal=Decimal("90.00"),
            total=Decimal("90.00"),
        )
        OrderItem.objects.create(
            order=self.order, product=product, product_name="Бринза", quantity=1, unit_price=90, line_total=90
        )

    def test_deliver_reports_each_channel(self):
        with mock.patch("notifications.viber.ViberClient.from_settings") as from_settings:
            from_settings.return_value.send_message.return_value = NotificationResult(success=True)
            with self.assertLogs("notifications.dispatch", level="INFO"):
                results = dispatch.deliver(dispatch.ORDER_STATUS_CHANGED, self.order.id)

        self.assertEqual(results["email"], NotificationResult(success=False, error="No email address"))
        self.assertEqual(results["viber"], NotificationResult(success=True))

    def test_sender_crash_is_contained(self):
        crashing = (("email", mock.Mock(side_effect=RuntimeError("boom"))),)
        with mock.patch.dict(dispatch.CHANNELS, {dispatch.ORDER_CREATED: crashing}):
            with self.assertLogs("notifications.dispatch", level="ERROR"):
                results = dispatch.deliver(dispatch.ORDER_CREATED, self.order.id)

        self.assertEqual(results["email"], NotificationResult(success=False, error="boom"))

    def test_missing_order_is_logged(self):
        self.order.items.all().delete()
        order_id = self.order.id
        self.order.delete()

        with self.assertLogs("notifications.dispatch", level="WARNING"):
            self.assertEqual(dispatch.deliver(dispatch.ORDER_CREATED, order_id), {})

    @override_settings(NOTIFICATIONS_ASYNC=True)
    def test_async_dispatch_runs_on_a_daemon_thread_after_commit(self):
        with mock.patch("notifications.dispatch.threading.Thread") as thread_cls:
            with self.captureOnCommitCallbacks(execute=False) as callbacks:
                dispatch.dispatch_order_created(self.order)
            thread_cls.assert_not_called()

            for callback in callbacks:
                callback()

        thread_cls.assert_called_once()
        self.assertTrue(thread_cls.call_args.kwargs["daemon"])
        self.assertEqual(thread_cls.call_args.kwargs["args"], (dispatch.ORDER_CREATED, self.order.id))
        thread_cls.return_value.start.assert_called_once_with()

    def test_ready_for_pickup_text_names_the_branch(self):
        self.assertIn("Можете забрати замовлення з магазину: Поділ", status_text(self.order))
