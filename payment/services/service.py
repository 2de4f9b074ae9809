# payment/services/service.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from core.config import xendit_settings
from core.persistence import upsert_by_external_key
from order.models import Order
from payment.models import Payment
from .xendit_sdk import XenditError, XenditSDK

logger = logging.getLogger(__name__)


class PaymentServiceError(Exception):
    """Base exception for payment service errors."""


class PaymentConfigurationError(PaymentServiceError):
    """Raised when required Xendit settings are missing."""


class PaymentGatewayError(PaymentServiceError):
    """Raised when Xendit answers with an error status."""

    def __init__(self, message: str, status_code: int = 502, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


# Invoice payment_methods values accepted by Xendit (commonly used subset).
ALLOWED_PAYMENT_METHODS = frozenset(
    {
        "CARD",
        "BANK_TRANSFER",
        "RETAIL_OUTLET",
        "EWALLET",
        "QRIS",
        "DIRECT_DEBIT",
        "PAYLATER",
    }
)

PAYMENT_METHOD_ALIASES = {
    "e-wallet": "EWALLET",
    "ewallet": "EWALLET",
    "wallet": "EWALLET",
    "qris": "QRIS",
    "bank_transfer": "BANK_TRANSFER",
    "bank-transfer": "BANK_TRANSFER",
}


@dataclass(frozen=True)
class PaymentSession:
    session_id: str
    checkout_url: str
    provider: str = "xendit"

    def as_response(self) -> Dict[str, str]:
        return {
            "provider": self.provider,
            "session_id": self.session_id,
            "checkout_url": self.checkout_url,
            "url": self.checkout_url,
        }


class PaymentService:
    """Invoice and checkout-session operations against Xendit."""

    provider = "xendit"

    def __init__(self, sdk: Optional[XenditSDK] = None) -> None:
        if sdk is None:
            config = xendit_settings()
            if not config.secret_key:
                raise PaymentConfigurationError("Payments not configured (XENDIT_SECRET_KEY missing)")
            sdk = XenditSDK.from_settings(config)
        self.sdk = sdk

    # -----------------------------
    # Invoices
    # -----------------------------
    def create_invoice(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = {key: self._json_value(value) for key, value in payload.items() if value is not None}
        return self._call_gateway(self.sdk.create_invoice, payload=body)

    def get_invoice(self, invoice_id: str) -> Dict[str, Any]:
        if not invoice_id:
            raise PaymentServiceError("invoice id is required")
        return self._call_gateway(self.sdk.get_invoice, invoice_id=invoice_id)

    # -----------------------------
    # Checkout sessions
    # -----------------------------
    def create_order_session(
        self,
        order: Order,
        return_url: Optional[str] = None,
        payment_method: Optional[str] = None,
        payment_channel: Optional[str] = None,
    ) -> PaymentSession:
        return self._open_session(
            external_id=f"order-{order.id}",
            amount=max(Decimal("0"), self._to_decimal(order.total_amount)),
            description=f"Payment for Order {order.id}",
            order=order,
            return_url=return_url,
            payment_method=payment_method,
            payment_channel=payment_channel,
        )

    def create_test_session(
        self,
        total: Any,
        return_url: Optional[str] = None,
        payment_method: Optional[str] = None,
        payment_channel: Optional[str] = None,
    ) -> PaymentSession:
        return self._open_session(
            external_id=f"test-{int(time.time() * 1000)}",
            amount=max(Decimal("0"), self._to_decimal(total)),
            description="Test payment",
            order=None,
            return_url=return_url,
            payment_method=payment_method,
            payment_channel=payment_channel,
        )

    def _open_session(
        self,
        external_id: str,
        amount: Decimal,
        description: str,
        order: Optional[Order],
        return_url: Optional[str],
        payment_method: Optional[str],
        payment_channel: Optional[str],
    ) -> PaymentSession:
        metadata = {"channel": payment_channel.upper()} if payment_channel else None
        invoice = self.create_invoice(
            {
                "external_id": external_id,
                "amount": amount,
                "description": description,
                "success_redirect_url": return_url,
                "currency": "IDR",
                "payment_methods": self.normalize_payment_methods(payment_method),
                "metadata": metadata,
            }
        )
        session = PaymentSession(
            session_id=str(invoice.get("id") or ""),
            checkout_url=str(invoice.get("invoice_url") or ""),
        )
        self._record_session(session, amount=amount, order=order, external_id=external_id)
        return session

    def _record_session(self, session: PaymentSession, amount: Decimal, order: Optional[Order], external_id: str) -> None:
        if not session.session_id:
            logger.warning("Xendit invoice for external_id=%s returned no id", external_id)
            return
        # A callback may already have created the row; never rewind its status.
        upsert_by_external_key(
            Payment,
            key_field="session_id",
            key_value=session.session_id,
            values={"invoice_url": session.checkout_url or None},
            create_only={
                "order": order,
                "provider": self.provider,
                "status": Payment.Status.PENDING,
                "amount": amount,
                "currency": "IDR",
                "metadata": {"external_id": external_id},
            },
        )

    @staticmethod
    def normalize_payment_methods(payment_method: Optional[str]) -> Optional[List[str]]:
        """Map a storefront payment method onto Xendit's invoice narrowing, or None for all methods."""
        if not payment_method:
            return None
        mapped = PAYMENT_METHOD_ALIASES.get(payment_method.lower()) or payment_method.upper()
        if mapped in ALLOWED_PAYMENT_METHODS:
            return [mapped]
        return None

    # -----------------------------
    # Helpers
    # -----------------------------
    @staticmethod
    def _to_decimal(value: Any) -> Decimal:
        try:
            return Decimal(str(value if value is not None else 0))
        except (InvalidOperation, ValueError):
            raise PaymentServiceError(f"Invalid amount: {value!r}")

    @staticmethod
    def _json_value(value: Any) -> Any:
        if isinstance(value, Decimal):
            return int(value) if value == value.to_integral_value() else float(value)
        return value

    @staticmethod
    def _call_gateway(func, **kwargs):
        try:
            return func(**kwargs)
        except XenditError as exc:
            logger.warning("Xendit request failed status=%s body=%s", exc.status_code, exc.body)
            raise PaymentGatewayError(str(exc), status_code=exc.status_code, body=exc.body) from exc
