from django.contrib import admin

from .models import Shipment, ShipmentEvent


class ShipmentEventInline(admin.TabularInline):
    model = ShipmentEvent
    extra = 0
    fields = ("status", "status_detail", "external_id", "processed", "processing_attempts", "received_at")
    readonly_fields = fields


@admin.register(Shipment)
class ShipmentAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "courier_name", "service", "awb", "status", "updated_at")
    list_filter = ("status", "courier_name")
    search_fields = ("order__id", "awb", "external_shipment_id")
    inlines = (ShipmentEventInline,)


@admin.register(ShipmentEvent)
class ShipmentEventAdmin(admin.ModelAdmin):
    list_display = ("id", "shipment", "status", "external_id", "processed", "processing_attempts", "received_at")
    list_filter = ("status", "processed")
    search_fields = ("external_id", "shipment__awb")
