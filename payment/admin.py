from django.contrib import admin

from .models import Payment, PaymentEvent


class PaymentEventInline(admin.TabularInline):
	model = PaymentEvent
	extra = 0
	fields = ("event_type", "external_id", "processed", "processing_attempts", "received_at")
	readonly_fields = fields


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
	list_display = ("id", "order", "session_id", "amount", "currency", "status", "provider", "created_at")
	list_filter = ("status", "provider")
	search_fields = ("session_id", "order__id", "invoice_url")
	inlines = (PaymentEventInline,)


@admin.register(PaymentEvent)
class PaymentEventAdmin(admin.ModelAdmin):
	list_display = ("id", "payment", "event_type", "external_id", "processed", "processing_attempts", "received_at")
	list_filter = ("event_type", "processed")
	search_fields = ("external_id", "payment__session_id")
