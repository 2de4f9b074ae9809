import logging

import requests
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework import permissions, serializers, status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.config import xendit_settings
from core.webhooks import header_snapshot, token_matches
from order.models import Order
from payment.services.reconciler import PaymentWebhookReconciler
from payment.services.service import (
    PaymentConfigurationError,
    PaymentGatewayError,
    PaymentService,
    PaymentServiceError,
)

from .serializers import CreateInvoiceSerializer, CreateSessionSerializer

logger = logging.getLogger(__name__)


def _gateway_error_response(exc: Exception, fallback: str) -> Response:
    if isinstance(exc, PaymentConfigurationError):
        return Response({"error": str(exc)}, status=status.HTTP_501_NOT_IMPLEMENTED)
    if isinstance(exc, PaymentGatewayError):
        return Response({"error": exc.body or fallback}, status=exc.status_code)
    return Response({"error": {"message": str(exc) or fallback}}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class InvoiceCreateView(APIView):
    def post(self, request):
        serializer = CreateInvoiceSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        try:
            invoice = PaymentService().create_invoice(dict(serializer.validated_data))
        except (PaymentServiceError, requests.RequestException) as exc:
            logger.warning("Invoice creation failed: %s", exc)
            return _gateway_error_response(exc, "Failed to create invoice")
        return Response(invoice, status=status.HTTP_201_CREATED)


class InvoiceDetailView(APIView):
    def get(self, request, invoice_id):
        try:
            invoice = PaymentService().get_invoice(invoice_id)
        except (PaymentServiceError, requests.RequestException) as exc:
            logger.warning("Invoice lookup failed for id=%s: %s", invoice_id, exc)
            return _gateway_error_response(exc, "Failed to fetch invoice")
        return Response(invoice)


class PaymentSessionView(APIView):
    """Checkout session for the storefront: an invoice plus a local pending payment."""

    authentication_classes = []
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = CreateSessionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data

        order = None
        if data.get("order_id"):
            order = Order.objects.filter(id=data["order_id"]).first()
            if order is None:
                return Response({"error": "Order not found"}, status=status.HTTP_404_NOT_FOUND)

        options = {
            "return_url": data.get("return_url"),
            "payment_method": data.get("payment_method"),
            "payment_channel": data.get("payment_channel"),
        }
        try:
            service = PaymentService()
            if order is not None:
                session = service.create_order_session(order, **options)
            else:
                session = service.create_test_session(serializer.inline_total(), **options)
        except serializers.ValidationError as exc:
            return Response({"error": exc.detail}, status=status.HTTP_400_BAD_REQUEST)
        except PaymentConfigurationError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_501_NOT_IMPLEMENTED)
        except PaymentGatewayError as exc:
            logger.error("createPaymentSession failed status=%s body=%s", exc.status_code, exc.body)
            return Response({"error": "Failed to create payment session"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        except Exception:
            logger.exception("createPaymentSession failed")
            return Response({"error": "Failed to create payment session"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response(session.as_response(), status=status.HTTP_201_CREATED)


@method_decorator(csrf_exempt, name="dispatch")
class XenditWebhookView(APIView):
    """
    Xendit invoice callback.

    Authenticated by the shared ``x-callback-token``. Once the token matches
    the answer is always ``{"ok": true}``; reconciliation failures are logged
    and left for the next delivery.
    """

    authentication_classes = []
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        expected = xendit_settings().webhook_token
        if not expected:
            return Response({"error": "Webhook token not configured"}, status=status.HTTP_501_NOT_IMPLEMENTED)
        if not token_matches(expected, [request.headers.get("x-callback-token")]):
            logger.warning("Xendit webhook rejected: invalid callback token")
            return Response({"error": "Invalid webhook token"}, status=status.HTTP_401_UNAUTHORIZED)

        payload = request.data if isinstance(request.data, dict) else {}
        try:
            PaymentWebhookReconciler().reconcile(payload, header_snapshot(request.headers))
        except Exception:
            logger.exception("xenditWebhook error")
            return Response({"error": "Failed to process webhook"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response({"ok": True})
