from rest_framework import serializers

from .services import Address, CreateShipmentRequest, Parcel, RateQuoteRequest


class AddressSerializer(serializers.Serializer):
    name = serializers.CharField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True)
    email = serializers.CharField(required=False, allow_blank=True)
    address1 = serializers.CharField(allow_blank=True)
    address2 = serializers.CharField(required=False, allow_blank=True)
    city = serializers.CharField(allow_blank=True)
    province = serializers.CharField(required=False, allow_blank=True)
    postal_code = serializers.CharField()
    country = serializers.CharField(required=False, allow_blank=True)
    area_id = serializers.CharField(required=False, allow_blank=True)


class ParcelSerializer(serializers.Serializer):
    weight_gram = serializers.IntegerField(min_value=1)
    length_cm = serializers.FloatField(required=False, min_value=0.01)
    width_cm = serializers.FloatField(required=False, min_value=0.01)
    height_cm = serializers.FloatField(required=False, min_value=0.01)
    value_idr = serializers.FloatField(required=False, min_value=0.01)


class RateRequestSerializer(serializers.Serializer):
    origin = AddressSerializer()
    destination = AddressSerializer()
    parcel = ParcelSerializer()
    carriers = serializers.ListField(child=serializers.CharField(), required=False)

    def to_request(self) -> RateQuoteRequest:
        data = self.validated_data
        return RateQuoteRequest(
            origin=Address(**data["origin"]),
            destination=Address(**data["destination"]),
            parcel=Parcel(**data["parcel"]),
            carriers=tuple(data.get("carriers") or ()),
        )


class CreateShipmentSerializer(serializers.Serializer):
    order_id = serializers.CharField()
    origin = AddressSerializer()
    destination = AddressSerializer()
    parcel = ParcelSerializer()
    carrier = serializers.CharField()
    service = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True)

    def to_request(self) -> CreateShipmentRequest:
        data = self.validated_data
        return CreateShipmentRequest(
            order_id=data["order_id"],
            origin=Address(**data["origin"]),
            destination=Address(**data["destination"]),
            parcel=Parcel(**data["parcel"]),
            carrier=data["carrier"],
            service=data["service"],
            notes=data.get("notes", ""),
        )
