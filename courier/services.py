from __future__ import annotations

import logging
import random
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import requests
from django.db import DatabaseError

from core.config import JubelioSettings, jubelio_settings
from core.http import error_message
from core.persistence import upsert_by_external_key

from .jubelio import JubelioClient, ProviderError, ProviderHTTPError
from .models import Shipment

logger = logging.getLogger(__name__)

Number = Union[int, float]


class ShippingError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        if status_code:
            self.status_code = status_code


class ShippingNotConfigured(ShippingError):
    status_code = 501

    def __init__(self, message: str = "Shipping not configured") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class Address:
    address1: str = ""
    postal_code: str = ""
    city: str = ""
    name: str = ""
    phone: str = ""
    email: str = ""
    address2: str = ""
    province: str = ""
    country: str = "ID"
    area_id: Optional[str] = None


@dataclass(frozen=True)
class Parcel:
    weight_gram: Number
    length_cm: Optional[Number] = None
    width_cm: Optional[Number] = None
    height_cm: Optional[Number] = None
    value_idr: Optional[Number] = None


@dataclass(frozen=True)
class RateQuoteRequest:
    origin: Address
    destination: Address
    parcel: Parcel
    carriers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RateQuote:
    carrier: str
    service: str
    price: Number
    currency: str = "IDR"
    etd_days: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "carrier": self.carrier,
            "service": self.service,
            "price_idr": self.price,
            "currency": self.currency,
            "etd_days": self.etd_days,
        }


@dataclass(frozen=True)
class CreateShipmentRequest:
    order_id: str
    origin: Address
    destination: Address
    parcel: Parcel
    carrier: str
    service: str
    notes: str = ""


@dataclass(frozen=True)
class ShipmentResult:
    id: str
    tracking_number: str
    label_url: str
    carrier: str
    service: str
    status: str = "CREATED"

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CourierSelection:
    courier_id: Optional[str] = None
    courier_service_id: Optional[str] = None


MOCK_RATES = (
    RateQuote(carrier="jne", service="REG", price=12000, etd_days=2),
    RateQuote(carrier="jnt", service="EZ", price=13000, etd_days=2),
    RateQuote(carrier="sicepat", service="REG", price=11000, etd_days=3),
)


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def _number(value: Any) -> Number:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return int(number) if number.is_integer() else number


def _lower(value: Any) -> str:
    return str(value or "").strip().lower()


class RateNormalizer:
    """Builds Jubelio ``/rates`` bodies and maps the answer onto ``RateQuote``."""

    DEFAULT_DIMENSION_CM = 10

    def __init__(self, config: JubelioSettings) -> None:
        self.config = config

    def package_detail(self, parcel: Parcel) -> Dict[str, Number]:
        def dimension(value: Optional[Number]) -> Number:
            return max(1, value if value is not None else self.DEFAULT_DIMENSION_CM)

        return {
            "width": dimension(parcel.width_cm),
            "height": dimension(parcel.height_cm),
            "length": dimension(parcel.length_cm),
            "weight": max(1, parcel.weight_gram),
        }

    def build_request(self, destination: Address, parcel: Parcel) -> Dict[str, Any]:
        package = self.package_detail(parcel)
        origin = self.config.origin
        return {
            "origin": _compact({"area_id": origin.area_id or None, "zipcode": origin.zipcode or None}),
            "destination": _compact({"area_id": destination.area_id or None, "zipcode": destination.postal_code}),
            "package_detail": package,
            "items": [
                {
                    "quantity": 1,
                    "weight": package["weight"],
                    "length": package["length"],
                    "width": package["width"],
                    "height": package["height"],
                }
            ],
            "weight": package["weight"],
            "service_category_id": self.config.default_service_category_id,
            "total_value": max(0, parcel.value_idr or 0),
        }

    @staticmethod
    def normalize(data: Any) -> List[RateQuote]:
        if not isinstance(data, list):
            return []
        quotes = []
        for row in data:
            row = row if isinstance(row, dict) else {}
            quotes.append(
                RateQuote(
                    carrier=str(row.get("courier_name") or ""),
                    service=str(row.get("courier_service_name") or row.get("courier_service_code") or ""),
                    price=_number(row.get("rates") or row.get("final_rates") or 0),
                )
            )
        return quotes


class CourierResolver:
    """Turns a carrier/service pair into Jubelio courier ids from a fresh ``/rates`` call."""

    def __init__(self, client: JubelioClient, normalizer: RateNormalizer) -> None:
        self.client = client
        self.normalizer = normalizer

    def resolve(self, destination: Address, parcel: Parcel, carrier: str, service: str) -> CourierSelection:
        try:
            rows = self.client.rates(self.normalizer.build_request(destination, parcel))
            return self.match(rows, carrier, service)
        except (ProviderError, requests.RequestException, TypeError, ValueError):
            # Creation is still attempted without explicit ids.
            logger.exception("Courier resolution failed carrier=%s service=%s", carrier, service)
            return CourierSelection()

    @staticmethod
    def match(rows: Any, carrier: str, service: str) -> CourierSelection:
        if not isinstance(rows, list):
            return CourierSelection()
        candidates = [row for row in rows if isinstance(row, dict)]
        wanted_carrier = _lower(carrier)
        wanted_service = _lower(service)

        same_carrier = [row for row in candidates if _lower(row.get("courier_name")) == wanted_carrier]
        match = next(
            (
                row
                for row in same_carrier
                if wanted_service in (_lower(row.get("courier_service_name")), _lower(row.get("courier_service_code")))
            ),
            None,
        )
        if match is None and same_carrier:
            match = same_carrier[0]
        if match is None:
            return CourierSelection()
        return CourierSelection(
            courier_id=str(match["courier_id"]) if match.get("courier_id") else None,
            courier_service_id=str(match["courier_service_id"]) if match.get("courier_service_id") else None,
        )


def _configured() -> JubelioSettings:
    config = jubelio_settings()
    if not config.is_configured:
        raise ShippingNotConfigured()
    return config


def get_rates(request: RateQuoteRequest, client: Optional[JubelioClient] = None) -> List[RateQuote]:
    config = _configured()
    if config.is_mock:
        return list(MOCK_RATES)

    normalizer = RateNormalizer(config)
    client = client or JubelioClient(config)
    try:
        data = client.rates(normalizer.build_request(request.destination, request.parcel))
    except ProviderHTTPError as exc:
        raise ShippingError(f"Jubelio rates error: {error_message(exc.body, 'Failed to fetch rates')}", exc.status_code)
    except ProviderError as exc:
        raise ShippingError(f"Jubelio rates error: {exc}", 502)
    return normalizer.normalize(data)


def build_shipment_body(config: JubelioSettings, request: CreateShipmentRequest, selection: CourierSelection) -> Dict[str, Any]:
    normalizer = RateNormalizer(config)
    package = normalizer.package_detail(request.parcel)
    value = request.parcel.value_idr or 0
    origin = config.origin
    destination = request.destination
    return _compact(
        {
            "ref_no": request.order_id,
            "courier_id": selection.courier_id,
            "courier_service_id": selection.courier_service_id,
            "shipping_insurance": value,
            "is_cod": False,
            "wallet_id": config.wallet_id or None,
            "origin": {
                "name": origin.name or "Warehouse",
                "email": origin.email,
                "phone": origin.phone,
                "address": origin.address,
                "area_id": origin.area_id,
                "coordinate": None,
                "zipcode": origin.zipcode,
            },
            "destination": _compact(
                {
                    "name": destination.name or "Customer",
                    "email": destination.email,
                    "phone": destination.phone,
                    "address": destination.address1,
                    "area_id": destination.area_id or None,
                    "zipcode": destination.postal_code,
                }
            ),
            "package_detail": package,
            "items": [
                {
                    "item_code": "SKU",
                    "item_name": "Items",
                    "category": "-",
                    "quantity": 1,
                    "value": value,
                    "weight": package["weight"],
                    "length": package["length"],
                    "width": package["width"],
                    "height": package["height"],
                }
            ],
        }
    )


def create_shipment(request: CreateShipmentRequest, client: Optional[JubelioClient] = None) -> ShipmentResult:
    config = _configured()
    if config.is_mock:
        return ShipmentResult(
            id=f"SHP-{int(time.time() * 1000)}",
            tracking_number=f"TRK-{random.randrange(10 ** 8)}",
            label_url="",
            carrier=request.carrier,
            service=request.service,
        )

    client = client or JubelioClient(config)
    selection = CourierResolver(client, RateNormalizer(config)).resolve(
        request.destination, request.parcel, request.carrier, request.service
    )
    body = build_shipment_body(config, request, selection)
    try:
        data = client.create_shipment(body)
    except ProviderHTTPError as exc:
        raise ShippingError(f"Jubelio create error: {error_message(exc.body, 'Failed to create shipment')}", exc.status_code)
    except ProviderError as exc:
        raise ShippingError(f"Jubelio create error: {exc}", 502)

    data = data if isinstance(data, dict) else {}
    result = ShipmentResult(
        id=str(data.get("shipment_id") or ""),
        tracking_number=str(data.get("awb") or ""),
        label_url=str(data.get("tracking_url") or ""),
        carrier=request.carrier,
        service=request.service,
    )
    logger.info("Jubelio shipment created order=%s awb=%s", request.order_id, result.tracking_number)
    return result


def record_created_shipment(order_id: Optional[str], result: ShipmentResult) -> Optional[Shipment]:
    """Keep a local row for a freshly created shipment; failures are logged, never raised."""
    if not result.tracking_number:
        logger.warning("Shipment for order=%s has no AWB yet, not recorded", order_id)
        return None
    try:
        shipment, _ = upsert_by_external_key(
            Shipment,
            key_field="awb",
            key_value=result.tracking_number,
            values=_compact(
                {
                    "courier_name": result.carrier or None,
                    "service": result.service or None,
                    "external_shipment_id": result.id or None,
                    "label_url": result.label_url or None,
                }
            ),
            # A tracking callback may have beaten us here.
            create_only={"order_id": order_id or None, "status": result.status},
        )
    except DatabaseError:
        logger.exception("Failed to record shipment awb=%s order=%s", result.tracking_number, order_id)
        return None
    return shipment
