# payment/urls.py
from django.urls import path

from .views import InvoiceCreateView, InvoiceDetailView, PaymentSessionView, XenditWebhookView

urlpatterns = [
    path("invoices", InvoiceCreateView.as_view(), name="invoice-create"),
    path("invoices/<str:invoice_id>", InvoiceDetailView.as_view(), name="invoice-detail"),
    path("payments/create-session", PaymentSessionView.as_view(), name="payment-create-session"),
    path("webhooks/xendit", XenditWebhookView.as_view(), name="xendit-webhook"),
]
