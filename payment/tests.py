from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.core.cache import cache
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from core.payloads import extract
from order.models import Order
from payment.models import Payment, PaymentEvent
from payment.services.reconciler import INVOICE_CALLBACK_FIELDS, PaymentWebhookReconciler
from payment.services.service import PaymentGatewayError, PaymentService
from payment.services.xendit_sdk import XenditError, XenditSDK

XENDIT_TEST_SETTINGS = {
    "API_BASE_URL": "https://api.xendit.test",
    "SECRET_KEY": "xnd_test_secret",
    "WEBHOOK_TOKEN": "cb-token",
}


class InvoiceCallbackFieldTests(SimpleTestCase):
    def test_invoice_id_wins_over_external_id(self):
        fields = extract({"id": "inv_1", "external_id": "order-42", "status": "paid"}, INVOICE_CALLBACK_FIELDS)
        self.assertEqual(fields["external_id"], "inv_1")
        self.assertEqual(fields["order_id"], "42")
        self.assertEqual(fields["status"], "PAID")
        self.assertEqual(fields["currency"], "IDR")

    def test_external_id_used_when_id_missing(self):
        fields = extract({"external_id": "test-123", "status": "EXPIRED"}, INVOICE_CALLBACK_FIELDS)
        self.assertEqual(fields["external_id"], "test-123")
        self.assertEqual(fields["order_id"], "test-123")

    def test_fallback_sources_in_order(self):
        fields = extract(
            {
                "id": "inv_2",
                "paid_amount": "150000",
                "payment_method_type": "EWALLET",
                "ewallet_type": "OVO",
                "failure_reason": "INSUFFICIENT_BALANCE",
            },
            INVOICE_CALLBACK_FIELDS,
        )
        self.assertEqual(fields["amount"], Decimal("150000"))
        self.assertEqual(fields["payment_method"], "EWALLET")
        self.assertEqual(fields["payment_channel"], "OVO")
        self.assertEqual(fields["failure_code"], "INSUFFICIENT_BALANCE")

    def test_blank_values_fall_through(self):
        fields = extract({"id": "", "external_id": "order-7", "amount": "abc"}, INVOICE_CALLBACK_FIELDS)
        self.assertEqual(fields["external_id"], "order-7")
        self.assertIsNone(fields["amount"])


@override_settings(XENDIT=XENDIT_TEST_SETTINGS)
class XenditWebhookTests(TestCase):
    url = "/api/webhooks/xendit"

    def setUp(self):
        self.client = APIClient()
        cache.clear()
        self.order = Order.objects.create(id="42", total_amount=Decimal("100000.00"))

    def post(self, payload, token="cb-token"):
        headers = {"HTTP_X_CALLBACK_TOKEN": token} if token is not None else {}
        return self.client.post(self.url, payload, format="json", **headers)

    def test_paid_callback_creates_payment_event_and_pays_order(self):
        response = self.post({"id": "inv_1", "external_id": "order-42", "status": "PAID", "amount": 100000})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True})

        payment = Payment.objects.get(session_id="inv_1")
        self.assertEqual(payment.status, Payment.Status.PAID)
        self.assertEqual(payment.order_id, "42")
        self.assertEqual(payment.amount, Decimal("100000"))
        self.assertIsNotNone(payment.paid_at)
        self.assertIsNone(payment.expired_at)
        self.assertEqual(payment.webhook_headers.get("X-Callback-Token"), "***")

        event = PaymentEvent.objects.get(payment=payment)
        self.assertEqual(event.event_type, "PAID")
        self.assertEqual(event.external_id, "inv_1")
        self.assertTrue(event.processed)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)

    def test_duplicate_delivery_is_idempotent(self):
        payload = {"id": "inv_1", "external_id": "order-42", "status": "PAID", "amount": 100000}
        self.post(payload)

        # The storefront moves the order on; a redelivered PAID must not touch it.
        Order.objects.filter(id="42").update(status=Order.Status.SHIPPED)
        with patch("payment.services.reconciler.OrderStatusService.apply") as apply:
            response = self.post(payload)
            apply.assert_not_called()

        self.assertEqual(response.json(), {"ok": True})
        self.assertEqual(Payment.objects.filter(session_id="inv_1").count(), 1)
        event = PaymentEvent.objects.get()
        self.assertEqual(event.processing_attempts, 2)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.SHIPPED)

    def test_status_progression_keeps_one_payment_with_latest_status(self):
        self.post({"id": "inv_3", "external_id": "order-42", "status": "PENDING"})
        self.post({"id": "inv_3", "external_id": "order-42", "status": "SETTLED"})

        payment = Payment.objects.get(session_id="inv_3")
        self.assertEqual(payment.status, Payment.Status.SETTLED)
        self.assertEqual(payment.events.count(), 2)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)

    def test_expired_callback_cancels_pending_order(self):
        self.post({"id": "inv_4", "external_id": "order-42", "status": "EXPIRED"})

        payment = Payment.objects.get(session_id="inv_4")
        self.assertIsNotNone(payment.expired_at)
        self.assertIsNone(payment.paid_at)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.CANCELLED)

    def test_failed_callback_after_payment_does_not_cancel(self):
        self.post({"id": "inv_5", "external_id": "order-42", "status": "PAID"})
        self.post({"id": "inv_5", "external_id": "order-42", "status": "FAILED"})

        payment = Payment.objects.get(session_id="inv_5")
        self.assertEqual(payment.status, Payment.Status.PAID)
        self.assertIsNotNone(payment.paid_at)
        self.assertIsNotNone(payment.failed_at)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)

    def test_late_pending_callback_does_not_reopen_paid_payment(self):
        self.post({"id": "inv_9", "external_id": "order-42", "status": "PAID"})
        self.post({"id": "inv_9", "external_id": "order-42", "status": "PENDING"})

        payment = Payment.objects.get(session_id="inv_9")
        self.assertEqual(payment.status, Payment.Status.PAID)
        self.assertIsNotNone(payment.paid_at)
        self.assertEqual(payment.events.count(), 2)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)

    def test_expired_payment_is_final(self):
        self.post({"id": "inv_10", "external_id": "order-42", "status": "EXPIRED"})
        self.post({"id": "inv_10", "external_id": "order-42", "status": "PAID"})

        payment = Payment.objects.get(session_id="inv_10")
        self.assertEqual(payment.status, Payment.Status.EXPIRED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.CANCELLED)

    def test_paid_at_is_set_once(self):
        self.post({"id": "inv_6", "external_id": "order-42", "status": "PAID", "paid_at": "2024-01-02T03:04:05Z"})
        first = Payment.objects.get(session_id="inv_6").paid_at
        self.post({"id": "inv_6", "external_id": "order-42", "status": "SETTLED"})
        self.assertEqual(Payment.objects.get(session_id="inv_6").paid_at, first)

    def test_invalid_token_is_rejected_without_writes(self):
        response = self.post({"id": "inv_1", "external_id": "order-42", "status": "PAID"}, token="wrong")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"error": "Invalid webhook token"})
        self.assertFalse(Payment.objects.exists())
        self.assertFalse(PaymentEvent.objects.exists())
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)

    def test_missing_token_is_rejected(self):
        response = self.post({"id": "inv_1", "status": "PAID"}, token=None)
        self.assertEqual(response.status_code, 401)

    @override_settings(XENDIT={**XENDIT_TEST_SETTINGS, "WEBHOOK_TOKEN": ""})
    def test_unconfigured_token_returns_501(self):
        response = self.post({"id": "inv_1", "status": "PAID"})
        self.assertEqual(response.status_code, 501)

    def test_callback_for_unknown_order_still_acknowledged(self):
        response = self.post({"id": "inv_7", "external_id": "order-999", "status": "PAID"})

        self.assertEqual(response.json(), {"ok": True})
        payment = Payment.objects.get(session_id="inv_7")
        self.assertEqual(payment.order_id, "999")
        self.assertFalse(Order.objects.filter(id="999").exists())

    def test_order_failure_is_logged_and_acknowledged(self):
        with patch("payment.services.reconciler.OrderStatusService.apply", side_effect=DatabaseError):
            response = self.post({"id": "inv_8", "external_id": "order-42", "status": "PAID"})

        self.assertEqual(response.json(), {"ok": True})
        event = PaymentEvent.objects.get()
        self.assertFalse(event.processed)

    def test_existing_payment_matched_by_primary_key(self):
        payment = Payment.objects.create(order=self.order, session_id=None, status=Payment.Status.PENDING)

        self.post({"external_id": str(payment.id), "status": "PAID"})

        self.assertEqual(Payment.objects.count(), 1)
        payment.refresh_from_db()
        self.assertEqual(payment.status, Payment.Status.PAID)
        self.assertEqual(payment.session_id, str(payment.id))


class PaymentWebhookReconcilerTests(TestCase):
    def test_reconcile_result_reports_transition(self):
        Order.objects.create(id="43")
        result = PaymentWebhookReconciler().reconcile({"id": "inv_9", "external_id": "order-43", "status": "PAID"})

        self.assertFalse(result.duplicate)
        self.assertEqual(result.order_id, "43")
        self.assertEqual(result.transition.status, "paid")

    def test_order_id_falls_back_to_linked_payment(self):
        order = Order.objects.create(id="44")
        Payment.objects.create(order=order, session_id="inv_10", status=Payment.Status.PENDING)

        result = PaymentWebhookReconciler().reconcile({"id": "inv_10", "status": "SETTLED"})

        self.assertEqual(result.order_id, "44")
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.PAID)


class PaymentServiceTests(TestCase):
    def setUp(self):
        self.sdk = MagicMock(spec=XenditSDK)
        self.sdk.create_invoice.return_value = {"id": "inv_100", "invoice_url": "https://checkout.xendit.co/inv_100"}
        self.service = PaymentService(sdk=self.sdk)

    def test_order_session_uses_order_reference_and_records_payment(self):
        order = Order.objects.create(id="55", total_amount=Decimal("250000.00"))

        session = self.service.create_order_session(order, return_url="https://shop.test/thanks", payment_method="e-wallet")

        body = self.sdk.create_invoice.call_args.kwargs["payload"]
        self.assertEqual(body["external_id"], "order-55")
        self.assertEqual(body["amount"], 250000)
        self.assertEqual(body["payment_methods"], ["EWALLET"])
        self.assertEqual(body["success_redirect_url"], "https://shop.test/thanks")
        self.assertEqual(session.as_response()["url"], "https://checkout.xendit.co/inv_100")

        payment = Payment.objects.get(session_id="inv_100")
        self.assertEqual(payment.order_id, "55")
        self.assertEqual(payment.status, Payment.Status.PENDING)

    def test_session_does_not_rewind_status_set_by_callback(self):
        Payment.objects.create(session_id="inv_100", status=Payment.Status.PAID)
        self.service.create_test_session(Decimal("1000"))
        self.assertEqual(Payment.objects.get(session_id="inv_100").status, Payment.Status.PAID)

    def test_test_session_clamps_negative_total(self):
        self.service.create_test_session(Decimal("-5"), payment_channel="ovo")
        body = self.sdk.create_invoice.call_args.kwargs["payload"]
        self.assertTrue(body["external_id"].startswith("test-"))
        self.assertEqual(body["amount"], 0)
        self.assertEqual(body["metadata"], {"channel": "OVO"})
        self.assertNotIn("payment_methods", body)

    def test_payment_method_aliases(self):
        self.assertEqual(PaymentService.normalize_payment_methods("qris"), ["QRIS"])
        self.assertEqual(PaymentService.normalize_payment_methods("bank-transfer"), ["BANK_TRANSFER"])
        self.assertEqual(PaymentService.normalize_payment_methods("card"), ["CARD"])
        self.assertIsNone(PaymentService.normalize_payment_methods("xendit"))
        self.assertIsNone(PaymentService.normalize_payment_methods(None))

    def test_gateway_errors_keep_status_and_body(self):
        self.sdk.get_invoice.side_effect = XenditError(404, {"error_code": "INVOICE_NOT_FOUND_ERROR", "message": "not found"})
        with self.assertRaises(PaymentGatewayError) as ctx:
            self.service.get_invoice("inv_missing")
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(str(ctx.exception), "not found")


@override_settings(XENDIT=XENDIT_TEST_SETTINGS, SERVICE_API_KEY="svc-key")
class InvoiceEndpointTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        cache.clear()

    def test_invoice_create_requires_api_key(self):
        response = self.client.post("/api/invoices", {"external_id": "x", "amount": 1000}, format="json")
        self.assertEqual(response.status_code, 401)

        response = self.client.post(
            "/api/invoices", {"external_id": "x", "amount": 1000}, format="json", HTTP_X_API_KEY="nope"
        )
        self.assertEqual(response.status_code, 401)

    @patch("payment.views.PaymentService")
    def test_invoice_create_returns_201(self, service_cls):
        service_cls.return_value.create_invoice.return_value = {"id": "inv_1", "status": "PENDING"}

        response = self.client.post(
            "/api/invoices", {"external_id": "order-1", "amount": 1000}, format="json", HTTP_X_API_KEY="svc-key"
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["id"], "inv_1")
        payload = service_cls.return_value.create_invoice.call_args.args[0]
        self.assertEqual(payload, {"external_id": "order-1", "amount": 1000})

    def test_invoice_create_validates_payload(self):
        response = self.client.post(
            "/api/invoices", {"external_id": "", "amount": 0, "currency": "USD"}, format="json", HTTP_X_API_KEY="svc-key"
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("amount", response.json()["error"])
        self.assertIn("currency", response.json()["error"])

    @patch("payment.views.PaymentService")
    def test_invoice_provider_error_is_forwarded(self, service_cls):
        body = {"error_code": "INVOICE_NOT_FOUND_ERROR", "message": "not found"}
        service_cls.return_value.get_invoice.side_effect = PaymentGatewayError("not found", status_code=404, body=body)

        response = self.client.get("/api/invoices/inv_missing", HTTP_X_API_KEY="svc-key")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": body})

    @override_settings(XENDIT={**XENDIT_TEST_SETTINGS, "SECRET_KEY": ""})
    def test_invoice_without_secret_key_returns_501(self):
        response = self.client.get("/api/invoices/inv_1", HTTP_X_API_KEY="svc-key")
        self.assertEqual(response.status_code, 501)


@override_settings(XENDIT=XENDIT_TEST_SETTINGS)
class PaymentSessionEndpointTests(TestCase):
    url = "/api/payments/create-session"

    def setUp(self):
        self.client = APIClient()
        cache.clear()

    @patch("payment.views.PaymentService")
    def test_session_for_order(self, service_cls):
        Order.objects.create(id="77", total_amount=Decimal("5000"))
        service_cls.return_value.create_order_session.return_value.as_response.return_value = {
            "provider": "xendit",
            "session_id": "inv_77",
            "checkout_url": "https://checkout/inv_77",
            "url": "https://checkout/inv_77",
        }

        response = self.client.post(self.url, {"order_id": "77", "payment_method": "qris"}, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["session_id"], "inv_77")
        order = service_cls.return_value.create_order_session.call_args.args[0]
        self.assertEqual(order.id, "77")

    def test_session_for_missing_order_returns_404(self):
        response = self.client.post(self.url, {"order_id": "nope"}, format="json")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Order not found"})

    def test_session_requires_order_or_test_flag(self):
        response = self.client.post(self.url, {"return_url": "https://shop.test"}, format="json")
        self.assertEqual(response.status_code, 400)

    @patch("payment.views.PaymentService")
    def test_test_session_accepts_total_alias(self, service_cls):
        service_cls.return_value.create_test_session.return_value.as_response.return_value = {"session_id": "inv_t"}

        response = self.client.post(self.url, {"test": True, "order": {"total": 12345}}, format="json")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(service_cls.return_value.create_test_session.call_args.args[0], Decimal("12345"))

    @patch("payment.views.PaymentService")
    def test_gateway_failure_returns_500(self, service_cls):
        service_cls.return_value.create_test_session.side_effect = PaymentGatewayError("boom", status_code=400)

        response = self.client.post(self.url, {"test": True, "order": {"total_amount": 1}}, format="json")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Failed to create payment session"})
