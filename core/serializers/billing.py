from decimal import Decimal

from rest_framework import serializers

from core.models import SERVICE_TYPE_CHOICES, BillingItem, DiagnosticBill

PAYMENT_METHODS = ['cash', 'card', 'upi', 'insurance', 'bank_transfer']


class BillingListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in BillingItem.STATUS_CHOICES], required=False)
    orderType = serializers.ChoiceField(choices=[c for c, _ in SERVICE_TYPE_CHOICES], required=False)
    uhid = serializers.CharField(max_length=20, required=False)
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    q = serializers.CharField(max_length=64, required=False, allow_blank=True)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)


class BillingStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=['billed', 'paid'])
    paymentMethod = serializers.ChoiceField(choices=PAYMENT_METHODS, required=False)

    def validate(self, attrs):
        if attrs['status'] == 'paid' and not attrs.get('paymentMethod'):
            raise serializers.ValidationError({'paymentMethod': 'required when marking paid'})
        return attrs


class BillCreateSerializer(serializers.Serializer):
    uhid = serializers.CharField(max_length=20)
    itemIds = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, default=0)
    tax = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, default=0)
    billType = serializers.CharField(max_length=32, required=False, default='diagnostic')
    prefix = serializers.RegexField(r'^[A-Za-z]{1,6}$', required=False, default='DB')


class PaymentSerializer(serializers.Serializer):
    paymentMethod = serializers.ChoiceField(choices=PAYMENT_METHODS)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'), required=False)
    reference = serializers.CharField(max_length=64, required=False, allow_blank=True)


class BillListQuerySerializer(serializers.Serializer):
    uhid = serializers.CharField(max_length=20, required=False)
    paymentStatus = serializers.ChoiceField(choices=[c for c, _ in DiagnosticBill.PAYMENT_STATUS_CHOICES],
                                            required=False)
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)
