import threading
import time
from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from core.config import jubelio_settings
from core.payloads import extract
from courier.jubelio import JubelioClient, ProviderError, ProviderHTTPError, TokenCache, get_token_cache
from courier.models import Shipment, ShipmentEvent
from courier.reconciler import SHIPMENT_CALLBACK_FIELDS, ShipmentWebhookReconciler
from courier.services import (
    MOCK_RATES,
    Address,
    CourierResolver,
    CreateShipmentRequest,
    Parcel,
    RateNormalizer,
    RateQuoteRequest,
    ShippingError,
    ShippingNotConfigured,
    ShipmentResult,
    create_shipment,
    get_rates,
    record_created_shipment,
)
from order.models import Order

ORIGIN = {
    "NAME": "Gudang Utama",
    "EMAIL": "ops@shop.test",
    "PHONE": "0812000000",
    "ADDRESS": "Jl. Gudang 1",
    "ZIPCODE": "10110",
    "AREA_ID": "ORIGIN-AREA",
}
LIVE_JUBELIO = {
    "API_BASE_URL": "https://api.jubelio.test",
    "MODE": "live",
    "API_TOKEN": "static-token",
    "WALLET_ID": "wallet-1",
    "WEBHOOK_TOKEN": "hook-token",
    "DEFAULT_SERVICE_CATEGORY_ID": 1,
    "ORIGIN": ORIGIN,
}
MOCK_JUBELIO = {**LIVE_JUBELIO, "API_BASE_URL": "mock", "MODE": "mock"}

RATE_ROWS = [
    {"courier_id": 1, "courier_name": "JNE", "courier_service_id": 11, "courier_service_name": "Reguler", "courier_service_code": "REG", "rates": 12000},
    {"courier_id": 1, "courier_name": "JNE", "courier_service_id": 12, "courier_service_name": "YES", "courier_service_code": "YES", "rates": 24000},
    {"courier_id": 2, "courier_name": "SiCepat", "courier_service_id": 21, "courier_service_name": "Halu", "courier_service_code": "HALU", "final_rates": 9000},
]


def _response(status_code, body):
    response = MagicMock()
    response.status_code = status_code
    response.content = b"payload" if body is not None else b""
    if isinstance(body, str):
        response.json.side_effect = ValueError("not json")
        response.text = body
    else:
        response.json.return_value = body
    return response


def _shipment_request(**overrides):
    data = {
        "order_id": "42",
        "origin": Address(address1="Jl. Gudang 1", postal_code="10110"),
        "destination": Address(name="", address1="Jl. Melati 2", postal_code="40111", city="Bandung", area_id="DEST-AREA"),
        "parcel": Parcel(weight_gram=1200, value_idr=150000),
        "carrier": "jne",
        "service": "reg",
    }
    data.update(overrides)
    return CreateShipmentRequest(**data)


class TokenCacheTests(SimpleTestCase):
    def test_token_reused_until_refresh_margin(self):
        now = [1000.0]
        cache = TokenCache(clock=lambda: now[0])
        fetch = MagicMock(side_effect=[("t1", 60), ("t2", 60)])

        self.assertEqual(cache.get("k", fetch), "t1")
        now[0] += 49
        self.assertEqual(cache.get("k", fetch), "t1")
        now[0] += 1
        self.assertEqual(cache.get("k", fetch), "t2")
        self.assertEqual(fetch.call_count, 2)

    def test_short_expiry_is_raised_to_minimum(self):
        now = [0.0]
        cache = TokenCache(clock=lambda: now[0])
        fetch = MagicMock(side_effect=[("t1", 0), ("t2", 0)])

        cache.get("k", fetch)
        now[0] = 19
        self.assertEqual(cache.get("k", fetch), "t1")
        now[0] = 20
        self.assertEqual(cache.get("k", fetch), "t2")

    def test_entry_is_scoped_to_key(self):
        cache = TokenCache()
        cache.get("a", lambda: ("ta", 3600))
        self.assertEqual(cache.get("b", lambda: ("tb", 3600)), "tb")

    def test_concurrent_callers_trigger_single_refresh(self):
        cache = TokenCache()
        calls = []
        start = threading.Barrier(8)

        def fetch():
            calls.append(1)
            time.sleep(0.05)
            return "shared", 3600

        results = []

        def worker():
            start.wait()
            results.append(cache.get("k", fetch))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(calls), 1)
        self.assertEqual(results, ["shared"] * 8)


class JubelioClientAuthTests(SimpleTestCase):
    def _client(self, **overrides):
        with override_settings(JUBELIO={**LIVE_JUBELIO, **overrides}):
            config = jubelio_settings()
        session = MagicMock()
        session.request.return_value = _response(200, [])
        return JubelioClient(config, session=session, token_cache=TokenCache()), session

    def _authorization(self, session, call_index=-1):
        return session.request.call_args_list[call_index].kwargs["headers"].get("Authorization")

    def test_static_token_wins(self):
        client, session = self._client(CLIENT_ID="cid", CLIENT_SECRET="secret", USERNAME="u", PASSWORD="p")
        client.provinces()
        self.assertEqual(session.request.call_count, 1)
        self.assertEqual(self._authorization(session), "Bearer static-token")

    def test_client_credentials_issue_cached_token(self):
        client, session = self._client(API_TOKEN="", CLIENT_ID="cid", CLIENT_SECRET="secret")
        session.request.side_effect = [
            _response(200, {"token": "issued", "expires_in": 3600}),
            _response(200, []),
            _response(200, []),
        ]

        client.provinces()
        client.cities("31")

        token_call = session.request.call_args_list[0]
        self.assertTrue(token_call.args[1].endswith("/auth/generate-token"))
        self.assertNotIn("Authorization", token_call.kwargs["headers"])
        self.assertEqual(token_call.kwargs["json"], {"client_id": "cid", "client_secret": "secret"})
        self.assertEqual(self._authorization(session, 1), "Bearer issued")
        self.assertEqual(self._authorization(session, 2), "Bearer issued")
        self.assertEqual(session.request.call_count, 3)

    def test_missing_token_in_issuance_raises(self):
        client, session = self._client(API_TOKEN="", CLIENT_ID="cid", CLIENT_SECRET="secret")
        session.request.return_value = _response(200, {"expires_in": 3600})
        with self.assertRaises(ProviderError):
            client.provinces()

    def test_basic_auth_fallback(self):
        client, session = self._client(API_TOKEN="", USERNAME="user", PASSWORD="pass")
        client.provinces()
        self.assertEqual(self._authorization(session), "Basic dXNlcjpwYXNz")

    def test_no_credentials_sends_no_auth(self):
        client, session = self._client(API_TOKEN="")
        client.provinces()
        self.assertIsNone(self._authorization(session))

    def test_error_status_raises_with_body(self):
        client, session = self._client()
        session.request.return_value = _response(422, {"message": "area not found"})
        with self.assertRaises(ProviderHTTPError) as ctx:
            client.areas("99")
        self.assertEqual(ctx.exception.status_code, 422)
        self.assertEqual(str(ctx.exception), "area not found")

    def test_region_ids_are_quoted_and_non_lists_dropped(self):
        client, session = self._client()
        session.request.return_value = _response(200, {"unexpected": True})
        self.assertEqual(client.districts("a/b"), [])
        self.assertTrue(session.request.call_args.args[1].endswith("/region/districts/a%2Fb"))

    def test_transport_errors_propagate(self):
        client, session = self._client()
        session.request.side_effect = requests.ConnectionError("down")
        with self.assertRaises(requests.ConnectionError):
            client.provinces()


@override_settings(JUBELIO=LIVE_JUBELIO)
class RateNormalizerTests(SimpleTestCase):
    def test_request_body_clamps_and_defaults(self):
        normalizer = RateNormalizer(jubelio_settings())
        body = normalizer.build_request(Address(postal_code="40111"), Parcel(weight_gram=0, width_cm=0.5, value_idr=-10))

        self.assertEqual(body["origin"], {"area_id": "ORIGIN-AREA", "zipcode": "10110"})
        self.assertEqual(body["destination"], {"zipcode": "40111"})
        self.assertEqual(body["package_detail"], {"width": 1, "height": 10, "length": 10, "weight": 1})
        self.assertEqual(body["weight"], 1)
        self.assertEqual(body["items"][0]["quantity"], 1)
        self.assertEqual(body["service_category_id"], 1)
        self.assertEqual(body["total_value"], 0)

    def test_normalize_maps_rows_in_order(self):
        quotes = RateNormalizer.normalize(RATE_ROWS)
        self.assertEqual([(q.carrier, q.service, q.price) for q in quotes], [
            ("JNE", "Reguler", 12000),
            ("JNE", "YES", 24000),
            ("SiCepat", "Halu", 9000),
        ])
        self.assertTrue(all(q.currency == "IDR" and q.etd_days is None for q in quotes))

    def test_normalize_non_list_is_empty(self):
        self.assertEqual(RateNormalizer.normalize({"data": RATE_ROWS}), [])
        self.assertEqual(RateNormalizer.normalize(None), [])


class GetRatesTests(SimpleTestCase):
    request = RateQuoteRequest(
        origin=Address(postal_code="10110"),
        destination=Address(postal_code="40111"),
        parcel=Parcel(weight_gram=1000),
    )

    @override_settings(JUBELIO=MOCK_JUBELIO)
    def test_mock_mode_returns_fixed_quotes(self):
        quotes = get_rates(self.request)
        self.assertEqual(
            [(q.carrier, q.service, q.price, q.etd_days) for q in quotes],
            [("jne", "REG", 12000, 2), ("jnt", "EZ", 13000, 2), ("sicepat", "REG", 11000, 3)],
        )

    @override_settings(JUBELIO={"API_BASE_URL": ""})
    def test_unconfigured_raises_501(self):
        with self.assertRaises(ShippingNotConfigured) as ctx:
            get_rates(self.request)
        self.assertEqual(ctx.exception.status_code, 501)

    @override_settings(JUBELIO=LIVE_JUBELIO)
    def test_provider_error_becomes_shipping_error(self):
        client = MagicMock()
        client.rates.side_effect = ProviderHTTPError(422, {"message": "invalid zipcode"})
        with self.assertRaises(ShippingError) as ctx:
            get_rates(self.request, client=client)
        self.assertEqual(str(ctx.exception), "Jubelio rates error: invalid zipcode")
        self.assertEqual(ctx.exception.status_code, 422)

    @override_settings(JUBELIO=LIVE_JUBELIO)
    def test_live_rates_are_normalized(self):
        client = MagicMock()
        client.rates.return_value = RATE_ROWS
        self.assertEqual(len(get_rates(self.request, client=client)), 3)


class CourierResolverTests(SimpleTestCase):
    def test_exact_service_name_or_code_match(self):
        selection = CourierResolver.match(RATE_ROWS, "jne", "yes")
        self.assertEqual((selection.courier_id, selection.courier_service_id), ("1", "12"))

        selection = CourierResolver.match(RATE_ROWS, "SICEPAT", "halu")
        self.assertEqual((selection.courier_id, selection.courier_service_id), ("2", "21"))

    def test_falls_back_to_first_service_of_carrier(self):
        selection = CourierResolver.match(RATE_ROWS, "jne", "super-express")
        self.assertEqual((selection.courier_id, selection.courier_service_id), ("1", "11"))

    def test_unknown_carrier_selects_nothing(self):
        selection = CourierResolver.match(RATE_ROWS, "anteraja", "reg")
        self.assertIsNone(selection.courier_id)
        self.assertIsNone(selection.courier_service_id)

    @override_settings(JUBELIO=LIVE_JUBELIO)
    def test_fetch_errors_are_swallowed(self):
        client = MagicMock()
        client.rates.side_effect = ProviderHTTPError(500, "boom")
        resolver = CourierResolver(client, RateNormalizer(jubelio_settings()))
        with self.assertLogs("courier.services", level="ERROR"):
            selection = resolver.resolve(Address(postal_code="1"), Parcel(weight_gram=1), "jne", "reg")
        self.assertIsNone(selection.courier_id)


@override_settings(JUBELIO=LIVE_JUBELIO)
class CreateShipmentTests(SimpleTestCase):
    def test_create_body_and_result(self):
        client = MagicMock()
        client.rates.return_value = RATE_ROWS
        client.create_shipment.return_value = {"shipment_id": 987, "awb": "AWB123", "tracking_url": "https://track/AWB123"}

        result = create_shipment(_shipment_request(), client=client)

        body = client.create_shipment.call_args.args[0]
        self.assertEqual(body["ref_no"], "42")
        self.assertEqual(body["courier_id"], "1")
        self.assertEqual(body["courier_service_id"], "11")
        self.assertEqual(body["shipping_insurance"], 150000)
        self.assertFalse(body["is_cod"])
        self.assertEqual(body["wallet_id"], "wallet-1")
        self.assertEqual(body["origin"]["name"], "Gudang Utama")
        self.assertEqual(body["origin"]["area_id"], "ORIGIN-AREA")
        self.assertEqual(body["destination"]["name"], "Customer")
        self.assertEqual(body["destination"]["area_id"], "DEST-AREA")
        self.assertEqual(body["items"][0]["item_code"], "SKU")
        self.assertEqual(body["items"][0]["weight"], 1200)

        self.assertEqual(result, ShipmentResult(
            id="987", tracking_number="AWB123", label_url="https://track/AWB123", carrier="jne", service="reg",
        ))

    def test_unresolved_courier_omits_ids(self):
        client = MagicMock()
        client.rates.side_effect = requests.Timeout("slow")
        client.create_shipment.return_value = {}

        create_shipment(_shipment_request(carrier="anteraja"), client=client)

        body = client.create_shipment.call_args.args[0]
        self.assertNotIn("courier_id", body)
        self.assertNotIn("courier_service_id", body)

    def test_provider_errors_unwrap_to_one_message(self):
        cases = [
            ("Bad Request", "Jubelio create error: Bad Request"),
            ({"message": "wallet empty"}, "Jubelio create error: wallet empty"),
            ({"code": 7}, 'Jubelio create error: {"code": 7}'),
        ]
        for body, expected in cases:
            client = MagicMock()
            client.rates.return_value = []
            client.create_shipment.side_effect = ProviderHTTPError(409, body)
            with self.assertRaises(ShippingError) as ctx:
                create_shipment(_shipment_request(), client=client)
            self.assertEqual(str(ctx.exception), expected)
            self.assertEqual(ctx.exception.status_code, 409)

    @override_settings(JUBELIO=MOCK_JUBELIO)
    def test_mock_mode_fabricates_ids(self):
        result = create_shipment(_shipment_request())
        self.assertTrue(result.id.startswith("SHP-"))
        self.assertTrue(result.tracking_number.startswith("TRK-"))
        self.assertEqual(result.status, "CREATED")


class RecordCreatedShipmentTests(TestCase):
    def test_records_and_keeps_callback_status(self):
        result = ShipmentResult(id="987", tracking_number="AWB9", label_url="", carrier="jne", service="reg")
        shipment = record_created_shipment("42", result)
        self.assertEqual(shipment.status, "CREATED")
        self.assertEqual(shipment.order_id, "42")

        Shipment.objects.filter(awb="AWB9").update(status="IN_TRANSIT")
        record_created_shipment("42", result)
        self.assertEqual(Shipment.objects.get(awb="AWB9").status, "IN_TRANSIT")
        self.assertEqual(Shipment.objects.count(), 1)

    def test_without_awb_nothing_is_recorded(self):
        result = ShipmentResult(id="", tracking_number="", label_url="", carrier="jne", service="reg")
        self.assertIsNone(record_created_shipment("42", result))
        self.assertFalse(Shipment.objects.exists())


class ShipmentCallbackFieldTests(SimpleTestCase):
    def test_fallbacks(self):
        fields = extract({"awb": "AWB1", "courier": "jne", "status": "delivered", "ref_no": "42"}, SHIPMENT_CALLBACK_FIELDS)
        self.assertEqual(fields["external_id"], "AWB1")
        self.assertEqual(fields["courier"], "jne")
        self.assertEqual(fields["status"], "DELIVERED")
        self.assertEqual(fields["order_id"], "42")

        fields = extract({"shipment_id": 5, "awb": "AWB1", "carrier": "JNE", "courier": "x", "order_id": "7", "ref_no": "8"}, SHIPMENT_CALLBACK_FIELDS)
        self.assertEqual(fields["external_id"], "5")
        self.assertEqual(fields["courier"], "JNE")
        self.assertEqual(fields["order_id"], "7")


@override_settings(JUBELIO=LIVE_JUBELIO)
class JubelioWebhookTests(TestCase):
    url = "/api/webhooks/jubelio"

    def setUp(self):
        self.client = APIClient()
        cache.clear()
        self.order = Order.objects.create(id="42", status=Order.Status.PAID, total_amount=Decimal("100000"))

    def post(self, payload, **headers):
        headers = headers or {"HTTP_X_WEBHOOK_TOKEN": "hook-token"}
        return self.client.post(self.url, payload, format="json", **headers)

    def test_delivered_completes_order_and_records_tracking(self):
        response = self.post({"awb": "AWB123", "carrier": "JNE", "status": "DELIVERED", "order_id": "42"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True})
        shipment = Shipment.objects.get(awb="AWB123")
        self.assertEqual(shipment.status, "DELIVERED")
        self.assertEqual(shipment.courier_name, "JNE")
        self.assertEqual(shipment.order_id, "42")
        event = ShipmentEvent.objects.get(shipment=shipment)
        self.assertEqual(event.external_id, "AWB123")
        self.assertTrue(event.processed)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.COMPLETED)
        self.assertEqual(self.order.shipping_courier, "JNE")
        self.assertEqual(self.order.tracking_number, "AWB123")

    def test_callback_token_header_is_accepted(self):
        response = self.post({"awb": "AWB1", "status": "IN_TRANSIT"}, HTTP_X_CALLBACK_TOKEN="hook-token")
        self.assertEqual(response.status_code, 200)

    def test_in_transit_ships_order(self):
        self.post({"awb": "AWB2", "courier": "jne", "status": "in_transit", "order_id": "42"})
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.SHIPPED)

    def test_unknown_status_is_treated_as_shipped(self):
        with self.assertLogs("courier.reconciler", level="WARNING"):
            self.post({"awb": "AWB3", "status": "TELEPORTED", "order_id": "42"})
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.SHIPPED)

    def test_duplicate_delivery_is_idempotent(self):
        payload = {"awb": "AWB4", "carrier": "JNE", "status": "CANCELLED", "order_id": "42"}
        self.post(payload)
        with patch("courier.reconciler.OrderStatusService.apply") as apply:
            self.post(payload)
            apply.assert_not_called()

        self.assertEqual(Shipment.objects.filter(awb="AWB4").count(), 1)
        self.assertEqual(ShipmentEvent.objects.get().processing_attempts, 2)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.CANCELLED)

    def test_same_status_with_new_detail_is_a_new_event(self):
        self.post({"awb": "AWB10", "status": "IN_TRANSIT", "status_detail": "Arrived at Jakarta hub", "order_id": "42"})
        self.post({"awb": "AWB10", "status": "IN_TRANSIT", "status_detail": "Departed Jakarta hub", "order_id": "42"})

        details = list(ShipmentEvent.objects.order_by("id").values_list("status_detail", flat=True))
        self.assertEqual(details, ["Arrived at Jakarta hub", "Departed Jakarta hub"])
        self.assertTrue(all(ShipmentEvent.objects.values_list("processed", flat=True)))

    def test_completed_order_is_never_reopened(self):
        self.post({"awb": "AWB5", "status": "DELIVERED", "order_id": "42"})
        self.post({"awb": "AWB5", "status": "CANCELLED", "order_id": "42"})
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.COMPLETED)

    def test_order_id_falls_back_to_recorded_shipment(self):
        record_created_shipment("42", ShipmentResult(id="1", tracking_number="AWB6", label_url="", carrier="jne", service="reg"))
        self.post({"awb": "AWB6", "status": "DELIVERED"})
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.COMPLETED)

    def test_invalid_token_rejected_without_writes(self):
        response = self.post({"awb": "AWB7", "status": "DELIVERED", "order_id": "42"}, HTTP_X_WEBHOOK_TOKEN="nope")
        self.assertEqual(response.status_code, 401)
        self.assertFalse(Shipment.objects.exists())
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)

    @override_settings(JUBELIO={**LIVE_JUBELIO, "WEBHOOK_TOKEN": ""})
    def test_unconfigured_token_returns_501(self):
        response = self.post({"awb": "AWB8", "status": "DELIVERED"})
        self.assertEqual(response.status_code, 501)

    def test_reconciler_returns_transition(self):
        result = ShipmentWebhookReconciler().reconcile({"awb": "AWB9", "status": "PICKED_UP", "ref_no": "42"})
        self.assertEqual(result.order_id, "42")
        self.assertEqual(result.transition.status, "shipped")


@override_settings(JUBELIO=LIVE_JUBELIO, SERVICE_API_KEY="svc-key")
class ShippingEndpointTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        cache.clear()
        self.structured = {
            "order_id": "42",
            "origin": {"address1": "Jl. Gudang 1", "city": "Jakarta", "postal_code": "10110"},
            "destination": {"address1": "Jl. Melati 2", "city": "Bandung", "postal_code": "40111", "area_id": "DEST-AREA"},
            "parcel": {"weight_gram": 1000},
            "carrier": "jne",
            "service": "REG",
        }

    def test_create_requires_api_key(self):
        response = self.client.post("/api/shipping/create", self.structured, format="json")
        self.assertEqual(response.status_code, 401)
        response = self.client.post("/api/shipping/create-shipment", {"order_id": "42"}, format="json")
        self.assertEqual(response.status_code, 401)

    @patch("courier.views.create_shipment")
    def test_destination_equal_to_origin_area_is_rejected(self, create):
        payload = dict(self.structured, destination=dict(self.structured["destination"], area_id="ORIGIN-AREA"))
        response = self.client.post("/api/shipping/create", payload, format="json", HTTP_X_API_KEY="svc-key")
        self.assertEqual(response.status_code, 400)
        self.assertIn("same as origin", response.json()["error"])

        response = self.client.post(
            "/api/shipping/create-shipment",
            {"order_id": "42", "provider": "jne", "service_code": "REG", "address": {"area_id": "ORIGIN-AREA"}},
            format="json",
            HTTP_X_API_KEY="svc-key",
        )
        self.assertEqual(response.status_code, 400)
        create.assert_not_called()

    @patch("courier.views.create_shipment")
    def test_structured_create_records_shipment(self, create):
        create.return_value = ShipmentResult(id="987", tracking_number="AWB123", label_url="", carrier="jne", service="REG")

        response = self.client.post("/api/shipping/create", self.structured, format="json", HTTP_X_API_KEY="svc-key")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["shipment"]["tracking_number"], "AWB123")
        self.assertEqual(Shipment.objects.get(awb="AWB123").order_id, "42")

    @patch("courier.views.create_shipment")
    def test_legacy_create_applies_parcel_defaults(self, create):
        create.return_value = ShipmentResult(id="987", tracking_number="AWB777", label_url="", carrier="jne", service="REG")

        response = self.client.post(
            "/api/shipping/create-shipment",
            {"order_id": "42", "provider": "jne", "service_code": "REG", "address": {"postal_code": "40111"}},
            format="json",
            HTTP_X_API_KEY="svc-key",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["shipment_id"], "987")
        self.assertEqual(response.json()["tracking_number"], "AWB777")
        request = create.call_args.args[0]
        self.assertEqual(request.parcel, Parcel(weight_gram=1000, length_cm=10, width_cm=10, height_cm=10, value_idr=0))
        self.assertEqual(request.carrier, "jne")
        self.assertIsNone(request.destination.area_id)

    @patch("courier.views.create_shipment")
    def test_shipping_error_status_is_forwarded(self, create):
        create.side_effect = ShippingError("Jubelio create error: wallet empty", 409)
        response = self.client.post("/api/shipping/create", self.structured, format="json", HTTP_X_API_KEY="svc-key")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json(), {"error": "Jubelio create error: wallet empty"})

    @override_settings(JUBELIO={**LIVE_JUBELIO, "API_TOKEN": "", "CLIENT_ID": "cid", "CLIENT_SECRET": "secret"})
    @patch("courier.jubelio.requests.Session")
    def test_token_issuance_without_token_is_json_502(self, session_cls):
        get_token_cache().invalidate()
        session_cls.return_value.request.return_value = _response(200, {"expires_in": 3600})

        response = self.client.post(
            "/api/shipping/rates", {k: self.structured[k] for k in ("origin", "destination", "parcel")}, format="json"
        )
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json(), {"error": "Jubelio rates error: Failed to obtain Jubelio token"})

        response = self.client.post("/api/shipping/create", self.structured, format="json", HTTP_X_API_KEY="svc-key")
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json(), {"error": "Jubelio create error: Failed to obtain Jubelio token"})
        self.assertFalse(Shipment.objects.exists())

    @patch("courier.views.create_shipment")
    def test_legacy_create_ignores_non_object_address(self, create):
        create.return_value = ShipmentResult(id="987", tracking_number="AWB778", label_url="", carrier="jne", service="REG")

        response = self.client.post(
            "/api/shipping/create-shipment",
            {"order_id": "42", "provider": "jne", "service_code": "REG", "address": "Jl. Melati 2"},
            format="json",
            HTTP_X_API_KEY="svc-key",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(create.call_args.args[0].destination, Address())

    @patch("courier.views.get_rates")
    def test_unreachable_provider_is_502(self, rates):
        rates.side_effect = requests.ConnectionError("down")
        response = self.client.post("/api/shipping/rates", {k: self.structured[k] for k in ("origin", "destination", "parcel")}, format="json")
        self.assertEqual(response.status_code, 502)

    def test_structured_rates_validates_payload(self):
        response = self.client.post("/api/shipping/rates", {"parcel": {"weight_gram": 0}}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("destination", response.json()["error"])

    @override_settings(JUBELIO=MOCK_JUBELIO)
    def test_structured_rates_in_mock_mode(self):
        response = self.client.post(
            "/api/shipping/rates", {k: self.structured[k] for k in ("origin", "destination", "parcel")}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["rates"][0], {
            "carrier": "jne", "service": "REG", "price_idr": 12000, "currency": "IDR", "etd_days": 2,
        })

    @override_settings(JUBELIO=MOCK_JUBELIO)
    def test_legacy_rates_flat_shape(self):
        response = self.client.get("/api/shipping/rates", {"to_postal": "40111", "weight": "1500"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), len(MOCK_RATES))
        self.assertEqual(response.json()[2], {
            "provider": "sicepat",
            "service_code": "REG",
            "service_name": "REG",
            "cost": 11000,
            "etd": "3 hari",
            "currency": "IDR",
        })

    @override_settings(JUBELIO={"API_BASE_URL": ""})
    def test_legacy_rates_not_configured(self):
        response = self.client.get("/api/shipping/rates", {"to_postal": "40111"})
        self.assertEqual(response.status_code, 501)


@override_settings(JUBELIO=LIVE_JUBELIO)
class RegionEndpointTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        cache.clear()

    def test_search_is_disabled(self):
        response = self.client.get("/api/regions", {"q": "bandung"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("/api/region/provinces", response.json()["error"])

    @patch("courier.views.JubelioClient")
    def test_hierarchy_proxies_to_client(self, client_cls):
        client_cls.return_value.cities.return_value = [{"city_id": "3273", "name": "Bandung"}]
        response = self.client.get("/api/region/cities/32")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [{"city_id": "3273", "name": "Bandung"}])
        client_cls.return_value.cities.assert_called_once_with("32")

    @patch("courier.views.JubelioClient")
    def test_provider_failure_is_400(self, client_cls):
        client_cls.return_value.provinces.side_effect = ProviderHTTPError(500, "down")
        response = self.client.get("/api/region/provinces")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Invalid request"})
