from django.urls import path

from .views import (
    JubelioWebhookView,
    LegacyShipmentCreateView,
    RegionLookupView,
    RegionSearchView,
    ShipmentCreateView,
    ShippingRatesView,
)


urlpatterns = [
    path("shipping/rates", ShippingRatesView.as_view(), name="shipping-rates"),
    path("shipping/create", ShipmentCreateView.as_view(), name="shipping-create"),
    path("shipping/create-shipment", LegacyShipmentCreateView.as_view(), name="shipping-create-legacy"),
    path("regions", RegionSearchView.as_view(), name="region-search"),
    path("region/provinces", RegionLookupView.as_view(level="provinces"), name="region-provinces"),
    path("region/cities/<str:parent_id>", RegionLookupView.as_view(level="cities"), name="region-cities"),
    path("region/districts/<str:parent_id>", RegionLookupView.as_view(level="districts"), name="region-districts"),
    path("region/areas/<str:parent_id>", RegionLookupView.as_view(level="areas"), name="region-areas"),
    path("webhooks/jubelio", JubelioWebhookView.as_view(), name="jubelio-webhook"),
]
