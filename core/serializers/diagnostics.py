import bleach
from rest_framework import serializers

from core.models import SERVICE_TYPE_CHOICES, URGENCY_CHOICES, DiagnosticOrder

SERVICE_TYPES = [c for c, _ in SERVICE_TYPE_CHOICES]
URGENCIES = [c for c, _ in URGENCY_CHOICES]


def _clean(v):
    return bleach.clean((v or '').strip(), strip=True)


class CatalogTestSerializer(serializers.Serializer):
    serviceType = serializers.ChoiceField(source='service_type', choices=SERVICE_TYPES)
    code = serializers.CharField(max_length=32, required=False, allow_blank=True)
    name = serializers.CharField(max_length=255)
    category = serializers.CharField(max_length=128, required=False, allow_blank=True)
    sampleType = serializers.CharField(source='sample_type', max_length=64, required=False, allow_blank=True)
    modality = serializers.CharField(max_length=64, required=False, allow_blank=True)
    bodyPart = serializers.CharField(source='body_part', max_length=64, required=False, allow_blank=True)
    fastingRequired = serializers.BooleanField(source='fasting_required', required=False)
    contrastRequired = serializers.BooleanField(source='contrast_required', required=False)
    turnaroundHours = serializers.IntegerField(source='turnaround_hours', min_value=0, required=False,
                                               allow_null=True)
    cost = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    isActive = serializers.BooleanField(source='is_active', required=False)

    def validate_name(self, v):
        return _clean(v)


class CatalogQuerySerializer(serializers.Serializer):
    serviceType = serializers.ChoiceField(choices=SERVICE_TYPES, required=False)
    category = serializers.CharField(max_length=128, required=False)
    q = serializers.CharField(max_length=64, required=False, allow_blank=True)
    includeInactive = serializers.BooleanField(required=False, default=False)


class OrderFieldsSerializer(serializers.Serializer):
    clinicalIndication = serializers.CharField(source='clinical_indication', required=False, allow_blank=True)
    provisionalDiagnosis = serializers.CharField(source='provisional_diagnosis', required=False, allow_blank=True)
    specialInstructions = serializers.CharField(source='special_instructions', required=False, allow_blank=True)
    bodyPart = serializers.CharField(source='body_part', max_length=64, required=False, allow_blank=True)
    urgency = serializers.ChoiceField(choices=URGENCIES, required=False)
    preferredDate = serializers.DateField(source='preferred_date', required=False, allow_null=True)
    preferredTime = serializers.TimeField(source='preferred_time', input_formats=['%H:%M', '%H:%M:%S'],
                                          required=False, allow_null=True)
    orderingDoctorId = serializers.IntegerField(source='ordering_doctor_id', min_value=1, required=False,
                                                allow_null=True)

    def validate_clinicalIndication(self, v):
        return _clean(v)

    def validate_provisionalDiagnosis(self, v):
        return _clean(v)

    def validate_specialInstructions(self, v):
        return _clean(v)


class OrderCreateSerializer(OrderFieldsSerializer):
    uhid = serializers.CharField(max_length=20)
    testId = serializers.IntegerField(source='test_id', min_value=1)
    appointmentId = serializers.CharField(source='appointment_code', max_length=20, required=False,
                                          allow_blank=True)


class OrderListQuerySerializer(serializers.Serializer):
    serviceType = serializers.ChoiceField(choices=SERVICE_TYPES, required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in DiagnosticOrder.STATUS_CHOICES], required=False)
    uhid = serializers.CharField(max_length=20, required=False)
    urgency = serializers.ChoiceField(choices=URGENCIES, required=False)
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    q = serializers.CharField(max_length=64, required=False, allow_blank=True)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in DiagnosticOrder.STATUS_CHOICES])
    sampleId = serializers.CharField(max_length=64, required=False, allow_blank=True)
    collectedBy = serializers.CharField(max_length=128, required=False, allow_blank=True)


class ResultSerializer(serializers.Serializer):
    parameterName = serializers.CharField(source='parameter_name', max_length=128)
    value = serializers.CharField(max_length=128)
    unit = serializers.CharField(max_length=32, required=False, allow_blank=True)
    referenceRange = serializers.CharField(source='reference_range', max_length=64, required=False,
                                           allow_blank=True)
    isAbnormal = serializers.BooleanField(source='is_abnormal', required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True)


class ResultUpdateSerializer(ResultSerializer):
    parameterName = serializers.CharField(source='parameter_name', max_length=128, required=False)
    value = serializers.CharField(max_length=128, required=False)


class ResultsSerializer(serializers.Serializer):
    results = ResultSerializer(many=True, allow_empty=False)


class GroupItemSerializer(serializers.Serializer):
    testId = serializers.IntegerField(source='test_id', min_value=1)
    defaultSelected = serializers.BooleanField(source='default_selected', required=False, default=True)
    sortOrder = serializers.IntegerField(source='sort_order', min_value=0, required=False)


class GroupItemUpdateSerializer(serializers.Serializer):
    defaultSelected = serializers.BooleanField(source='default_selected', required=False)
    sortOrder = serializers.IntegerField(source='sort_order', min_value=0, required=False)


class GroupSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    category = serializers.CharField(max_length=128, required=False, allow_blank=True)
    isActive = serializers.BooleanField(source='is_active', required=False)
    items = GroupItemSerializer(many=True, required=False)

    def validate_name(self, v):
        return _clean(v)


class GroupOrderSerializer(serializers.Serializer):
    uhid = serializers.CharField(max_length=20)
    groupId = serializers.IntegerField(source='group_id', min_value=1, required=False)
    testIds = serializers.ListField(source='test_ids', child=serializers.IntegerField(min_value=1),
                                    required=False, allow_empty=False)
    appointmentId = serializers.CharField(source='appointment_code', max_length=20, required=False,
                                          allow_blank=True)
    orderingDoctorId = serializers.IntegerField(source='ordering_doctor_id', min_value=1, required=False)
    clinicalIndication = serializers.CharField(source='clinical_indication', required=False, allow_blank=True)
    urgency = serializers.ChoiceField(choices=URGENCIES, required=False, default='routine')

    def validate(self, attrs):
        if not attrs.get('group_id') and not attrs.get('test_ids'):
            raise serializers.ValidationError({'groupId': 'groupId or testIds is required'})
        return attrs


class AttachmentUploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    uhid = serializers.CharField(max_length=20)
    orderId = serializers.IntegerField(min_value=1, required=False)
    groupOrderId = serializers.IntegerField(min_value=1, required=False)
    testName = serializers.CharField(max_length=255, required=False, allow_blank=True)
    testType = serializers.ChoiceField(choices=[c for c, _ in SERVICE_TYPE_CHOICES], required=False)

    def validate(self, attrs):
        if not attrs.get('orderId') and not attrs.get('groupOrderId'):
            raise serializers.ValidationError({'orderId': 'orderId or groupOrderId is required'})
        return attrs


class AttachmentUpdateSerializer(serializers.Serializer):
    testName = serializers.CharField(max_length=255)
