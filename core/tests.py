from decimal import Decimal
from unittest.mock import patch

from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from core.config import ExecutionMode, jubelio_settings, xendit_settings
from core.http import error_message
from core.payloads import Field, as_decimal, extract, strip_prefix, upper_text
from core.persistence import upsert_by_external_key
from core.webhooks import header_snapshot, token_matches
from payment.models import Payment


class PayloadFieldTests(SimpleTestCase):
    fields = (
        Field("ref", ("id", "external_id"), default=""),
        Field("status", ("status",), default="", transform=upper_text),
        Field("amount", ("amount",), transform=as_decimal),
    )

    def test_first_present_source_wins(self):
        self.assertEqual(extract({"id": "a", "external_id": "b"}, self.fields)["ref"], "a")
        self.assertEqual(extract({"id": "  ", "external_id": "b"}, self.fields)["ref"], "b")
        self.assertEqual(extract({"id": None}, self.fields)["ref"], "")

    def test_transforms_and_defaults(self):
        data = extract({"status": " paid ", "amount": "12.50"}, self.fields)
        self.assertEqual(data["status"], "PAID")
        self.assertEqual(data["amount"], Decimal("12.50"))
        self.assertIsNone(extract({"amount": True}, self.fields)["amount"])
        self.assertIsNone(extract({"amount": "NaN"}, self.fields)["amount"])

    def test_non_mapping_payload_yields_defaults(self):
        self.assertEqual(extract(["not", "a", "dict"], self.fields), {"ref": "", "status": "", "amount": None})

    def test_strip_prefix(self):
        strip = strip_prefix("order-")
        self.assertEqual(strip("order-42"), "42")
        self.assertEqual(strip("test-1"), "test-1")


class HttpHelperTests(SimpleTestCase):
    def test_error_message_unwrapping(self):
        self.assertEqual(error_message("plain", "fallback"), "plain")
        self.assertEqual(error_message({"message": "bad"}, "fallback"), "bad")
        self.assertEqual(error_message({"code": 1}, "fallback"), '{"code": 1}')
        self.assertEqual(error_message(None, "fallback"), "fallback")


class WebhookHelperTests(SimpleTestCase):
    def test_token_matching(self):
        self.assertTrue(token_matches("secret", [None, "secret"]))
        self.assertFalse(token_matches("secret", ["nope", None]))
        self.assertFalse(token_matches("", [""]))

    def test_header_snapshot_masks_secrets(self):
        snapshot = header_snapshot({"X-Callback-Token": "t", "Content-Type": "application/json", "X-Api-Key": "k"})
        self.assertEqual(snapshot, {"X-Callback-Token": "***", "Content-Type": "application/json", "X-Api-Key": "***"})


class ConfigTests(SimpleTestCase):
    def test_execution_mode_parsing(self):
        self.assertIs(ExecutionMode.parse(None), ExecutionMode.LIVE)
        self.assertIs(ExecutionMode.parse(" MOCK "), ExecutionMode.MOCK)
        with self.assertRaises(ImproperlyConfigured):
            ExecutionMode.parse("sandbox")

    @override_settings(JUBELIO={"API_BASE_URL": "", "MODE": "mock"})
    def test_mock_mode_counts_as_configured(self):
        config = jubelio_settings()
        self.assertTrue(config.is_mock)
        self.assertTrue(config.is_configured)

    @override_settings(JUBELIO={"API_BASE_URL": ""})
    def test_live_without_base_url_is_not_configured(self):
        self.assertFalse(jubelio_settings().is_configured)

    @override_settings(XENDIT={"API_BASE_URL": "https://api.xendit.test/", "SECRET_KEY": "k"})
    def test_xendit_settings(self):
        config = xendit_settings()
        self.assertEqual(config.api_base_url, "https://api.xendit.test")
        self.assertEqual(config.webhook_token, "")


class UpsertByExternalKeyTests(TestCase):
    def test_insert_then_update_on_same_key(self):
        payment, created = upsert_by_external_key(
            Payment,
            key_field="session_id",
            key_value="inv_1",
            values={"status": "PENDING"},
            create_only={"provider": "xendit", "amount": Decimal("10")},
        )
        self.assertTrue(created)

        again, created = upsert_by_external_key(
            Payment,
            key_field="session_id",
            key_value="inv_1",
            values={"status": "PAID"},
            create_only={"amount": Decimal("99")},
        )
        self.assertFalse(created)
        self.assertEqual(again.pk, payment.pk)
        again.refresh_from_db()
        self.assertEqual(again.status, "PAID")
        self.assertEqual(again.amount, Decimal("10"))

    def test_write_once_fields_keep_first_value(self):
        upsert_by_external_key(Payment, key_field="session_id", key_value="inv_2", values={}, write_once={"failure_code": "A"})
        payment, _ = upsert_by_external_key(
            Payment, key_field="session_id", key_value="inv_2", values={}, write_once={"failure_code": "B"}
        )
        payment.refresh_from_db()
        self.assertEqual(payment.failure_code, "A")

    def test_matches_primary_key_when_external_id_is_uuid(self):
        existing = Payment.objects.create(status="PENDING")
        payment, created = upsert_by_external_key(
            Payment, key_field="session_id", key_value="inv_3", external_id=str(existing.pk), values={"status": "PAID"}
        )
        self.assertFalse(created)
        self.assertEqual(payment.pk, existing.pk)
        self.assertEqual(Payment.objects.get(pk=existing.pk).session_id, "inv_3")

    def test_non_uuid_external_id_skips_primary_key_arm(self):
        _, created = upsert_by_external_key(
            Payment, key_field="session_id", key_value="inv_4", external_id="order-42", values={}
        )
        self.assertTrue(created)
        self.assertEqual(Payment.objects.count(), 1)

    def test_lost_insert_race_falls_back_to_update(self):
        Payment.objects.create(session_id="inv_5", status="PENDING")
        real_select = Payment.objects.select_for_update
        calls = []

        def stale_lookup():
            # A concurrent insert lands between our lookup and our insert.
            if not calls:
                calls.append(1)
                return Payment.objects.none()
            return real_select()

        with patch.object(Payment.objects, "select_for_update", side_effect=stale_lookup):
            payment, created = upsert_by_external_key(
                Payment, key_field="session_id", key_value="inv_5", values={"status": "PAID"}
            )

        self.assertFalse(created)
        self.assertEqual(Payment.objects.get(session_id="inv_5").status, "PAID")
        self.assertEqual(Payment.objects.count(), 1)

    def test_guarded_field_keeps_value_when_guard_refuses(self):
        upsert_by_external_key(Payment, key_field="session_id", key_value="inv_6", values={"status": "PAID"})
        payment, _ = upsert_by_external_key(
            Payment,
            key_field="session_id",
            key_value="inv_6",
            values={"status": "PENDING", "currency": "USD"},
            guards={"status": lambda current, new: current != "PAID"},
        )
        payment.refresh_from_db()
        self.assertEqual(payment.status, "PAID")
        self.assertEqual(payment.currency, "USD")


@override_settings(APP_ENV="test")
class HealthEndpointTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        cache.clear()

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True, "env": "test"})

    def test_database_health(self):
        self.assertEqual(self.client.get("/api/health/db").json(), {"ok": True})

    @patch("core.views.Order.objects.values_list", side_effect=DatabaseError("no such table"))
    def test_database_health_failure(self, _values_list):
        response = self.client.get("/api/health/db")
        self.assertEqual(response.status_code, 500)
        self.assertFalse(response.json()["ok"])


@override_settings(APP_ENV="test", API_RATE_LIMIT="60/min")
class ClientRateLimitTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        cache.clear()

    def exhaust(self, **extra):
        for _ in range(60):
            self.assertEqual(self.client.get("/api/health", **extra).status_code, 200)

    def test_sixty_first_request_is_throttled(self):
        self.exhaust()
        self.assertEqual(self.client.get("/api/health").status_code, 429)

    def test_budget_is_shared_across_routes(self):
        self.exhaust()
        response = self.client.post("/api/payments/create-session", {"test": True}, format="json")
        self.assertEqual(response.status_code, 429)

    def test_budget_is_per_client_ip(self):
        self.exhaust()
        self.assertEqual(self.client.get("/api/health", REMOTE_ADDR="10.0.0.9").status_code, 200)
        self.assertEqual(self.client.get("/api/health", REMOTE_ADDR="::1").status_code, 429)

    @override_settings(API_RATE_LIMIT=None)
    def test_unset_limit_disables_throttling(self):
        for _ in range(65):
            self.assertEqual(self.client.get("/api/health").status_code, 200)
