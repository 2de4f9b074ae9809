from decimal import Decimal, InvalidOperation

from rest_framework import serializers


class CreateInvoiceSerializer(serializers.Serializer):
    external_id = serializers.CharField(min_length=1)
    amount = serializers.IntegerField(min_value=1)
    description = serializers.CharField(required=False, allow_blank=True)
    payer_email = serializers.EmailField(required=False)
    success_redirect_url = serializers.URLField(required=False)
    failure_redirect_url = serializers.URLField(required=False)
    invoice_duration = serializers.IntegerField(required=False, min_value=1)
    currency = serializers.ChoiceField(choices=["IDR"], required=False)


class CreateSessionSerializer(serializers.Serializer):
    """Either a storefront ``order_id`` or ``test: true`` with an inline order total."""

    order_id = serializers.CharField(required=False, allow_blank=False)
    order = serializers.DictField(required=False)
    return_url = serializers.URLField(required=False)
    payment_method = serializers.CharField(required=False, allow_blank=True)
    payment_channel = serializers.CharField(required=False, allow_blank=True)
    test = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if not attrs.get("order_id") and not attrs.get("test"):
            raise serializers.ValidationError("order_id is required unless test is true")
        return attrs

    def inline_total(self) -> Decimal:
        order = self.validated_data.get("order") or {}
        raw = order.get("total_amount")
        if raw is None:
            raw = order.get("total")
        try:
            return Decimal(str(raw if raw is not None else 0))
        except (InvalidOperation, ValueError):
            raise serializers.ValidationError({"order": "total must be a number"})
