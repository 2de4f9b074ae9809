import logging
from typing import Any, Dict

import requests
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.config import jubelio_settings
from core.webhooks import header_snapshot, token_matches

from .jubelio import JubelioClient
from .reconciler import ShipmentWebhookReconciler
from .serializers import CreateShipmentSerializer, RateRequestSerializer
from .services import (
    Address,
    CreateShipmentRequest,
    Parcel,
    RateQuoteRequest,
    ShippingError,
    create_shipment,
    get_rates,
    record_created_shipment,
)

logger = logging.getLogger(__name__)

SAME_AREA_ERROR = (
    "Invalid destination area_id: same as origin. "
    "Please provide the destination area_id from /api/region/areas/{district_id}."
)
REGION_SEARCH_DISABLED = (
    "Region search is disabled. Use hierarchical endpoints: /api/region/provinces -> "
    "/api/region/cities/:province_id -> /api/region/districts/:city_id -> /api/region/areas/:district_id"
)


def _error(message: str, code: int) -> Response:
    return Response({"error": message}, status=code)


def _shipping_error_response(exc: Exception, context: str) -> Response:
    if isinstance(exc, ShippingError):
        logger.warning("[%s] error: %s", context, exc)
        return _error(str(exc), exc.status_code)
    logger.exception("[%s] provider unreachable", context)
    return _error("Shipping provider unreachable", status.HTTP_502_BAD_GATEWAY)


def _destination_reuses_origin_area(destination: Address) -> bool:
    origin_area = jubelio_settings().origin.area_id
    return bool(destination.area_id and origin_area and destination.area_id == origin_area)


def _origin_address(origin_postal: str = "") -> Address:
    origin = jubelio_settings().origin
    return Address(
        address1=origin.address,
        postal_code=origin_postal or origin.zipcode,
        name=origin.name,
        phone=origin.phone,
        email=origin.email,
    )


class ShippingRatesView(APIView):
    """
    POST: structured quote, ``{"rates": [...]}``.
    GET: storefront's flat list, ``?to_postal=&weight=&origin_postal=``.
    """

    authentication_classes = []
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = RateRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return _error(serializer.errors, status.HTTP_400_BAD_REQUEST)
        try:
            rates = get_rates(serializer.to_request())
        except (ShippingError, requests.RequestException) as exc:
            return _shipping_error_response(exc, "getShippingRates")
        return Response({"rates": [quote.as_dict() for quote in rates]})

    def get(self, request):
        if not jubelio_settings().is_configured:
            return _error("Shipping not configured", status.HTTP_501_NOT_IMPLEMENTED)
        try:
            weight = float(request.query_params.get("weight") or 0)
        except ValueError:
            weight = 0
        quote_request = RateQuoteRequest(
            origin=_origin_address(request.query_params.get("origin_postal", "")),
            destination=Address(postal_code=request.query_params.get("to_postal", "")),
            parcel=Parcel(weight_gram=weight or 1),
        )
        try:
            rates = get_rates(quote_request)
        except (ShippingError, requests.RequestException) as exc:
            return _shipping_error_response(exc, "getShippingRatesLegacy")

        results = []
        for quote in rates:
            item = {
                "provider": quote.carrier,
                "service_code": quote.service,
                "service_name": quote.service,
                "cost": quote.price,
                "currency": quote.currency or "IDR",
            }
            if quote.etd_days:
                item["etd"] = f"{quote.etd_days} hari"
            results.append(item)
        return Response(results)


class ShipmentCreateView(APIView):
    def post(self, request):
        serializer = CreateShipmentSerializer(data=request.data)
        if not serializer.is_valid():
            return _error(serializer.errors, status.HTTP_400_BAD_REQUEST)
        shipment_request = serializer.to_request()
        if _destination_reuses_origin_area(shipment_request.destination):
            return _error(SAME_AREA_ERROR, status.HTTP_400_BAD_REQUEST)

        try:
            result = create_shipment(shipment_request)
        except (ShippingError, requests.RequestException) as exc:
            return _shipping_error_response(exc, "createShipping")

        record_created_shipment(shipment_request.order_id, result)
        return Response({"shipment": result.as_dict()})


class LegacyShipmentCreateView(APIView):
    """``{order_id, provider, service_code, address, parcels}`` from the storefront checkout."""

    def post(self, request):
        if not jubelio_settings().is_configured:
            return _error("Shipping not configured", status.HTTP_501_NOT_IMPLEMENTED)

        body = request.data if isinstance(request.data, dict) else {}
        address: Dict[str, Any] = body.get("address") if isinstance(body.get("address"), dict) else {}
        parcels = body.get("parcels") or [{}]
        parcel: Dict[str, Any] = parcels[0] if isinstance(parcels, list) and isinstance(parcels[0], dict) else {}

        destination = Address(
            address1=str(address.get("address1") or ""),
            postal_code=str(address.get("postal_code") or ""),
            city=str(address.get("city") or ""),
            name=str(address.get("name") or ""),
            phone=str(address.get("phone") or ""),
            email=str(address.get("email") or ""),
            area_id=str(address["area_id"]) if address.get("area_id") else None,
        )
        if _destination_reuses_origin_area(destination):
            return _error(SAME_AREA_ERROR, status.HTTP_400_BAD_REQUEST)

        try:
            shipment_request = CreateShipmentRequest(
                order_id=str(body.get("order_id") or ""),
                origin=_origin_address(),
                destination=destination,
                parcel=Parcel(
                    weight_gram=float(parcel.get("weight_gram") or 1000),
                    length_cm=float(parcel.get("length_cm") or 10),
                    width_cm=float(parcel.get("width_cm") or 10),
                    height_cm=float(parcel.get("height_cm") or 10),
                    value_idr=float(parcel.get("value_idr") or 0),
                ),
                carrier=str(body.get("provider") or ""),
                service=str(body.get("service_code") or ""),
            )
        except (TypeError, ValueError):
            return _error("Invalid request", status.HTTP_400_BAD_REQUEST)

        try:
            result = create_shipment(shipment_request)
        except (ShippingError, requests.RequestException) as exc:
            return _shipping_error_response(exc, "createShippingLegacy")

        record_created_shipment(shipment_request.order_id, result)
        return Response(
            {
                "shipment_id": result.id,
                "tracking_number": result.tracking_number,
                "raw": result.as_dict(),
            }
        )


class RegionSearchView(APIView):
    authentication_classes = []
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        if not jubelio_settings().is_configured:
            return _error("Shipping not configured", status.HTTP_501_NOT_IMPLEMENTED)
        # Full-text search returns the whole region tree; only the drill-down is exposed.
        return _error(REGION_SEARCH_DISABLED, status.HTTP_400_BAD_REQUEST)


class RegionLookupView(APIView):
    """Proxies one level of Jubelio's province > city > district > area hierarchy."""

    authentication_classes = []
    permission_classes = [permissions.AllowAny]
    level = None

    def get(self, request, parent_id=None):
        config = jubelio_settings()
        if not config.is_configured:
            return _error("Shipping not configured", status.HTTP_501_NOT_IMPLEMENTED)
        if config.is_mock:
            return Response([])
        try:
            client = JubelioClient(config)
            lookup = getattr(client, self.level)
            regions = lookup() if parent_id is None else lookup(parent_id)
        except Exception:
            logger.exception("Region lookup failed level=%s parent=%s", self.level, parent_id)
            return _error("Invalid request", status.HTTP_400_BAD_REQUEST)
        return Response(regions)


@method_decorator(csrf_exempt, name="dispatch")
class JubelioWebhookView(APIView):
    authentication_classes = []
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        expected = jubelio_settings().webhook_token
        if not expected:
            return _error("Shipping not configured", status.HTTP_501_NOT_IMPLEMENTED)
        candidates = [request.headers.get("x-webhook-token"), request.headers.get("x-callback-token")]
        if not token_matches(expected, candidates):
            logger.warning("Jubelio webhook rejected: invalid token")
            return _error("Invalid webhook token", status.HTTP_401_UNAUTHORIZED)

        payload = request.data if isinstance(request.data, dict) else {}
        try:
            ShipmentWebhookReconciler().reconcile(payload, header_snapshot(request.headers))
        except Exception:
            logger.exception("jubelioWebhook error")
            return _error("Invalid request", status.HTTP_400_BAD_REQUEST)
        return Response({"ok": True})
