from rest_framework import serializers

from core.models import PatientRevisit
from core.serializers.appointment import TIME_FORMATS, AppointmentRequestSerializer
from core.serializers.patient import clean_text


class RevisitFieldsSerializer(serializers.Serializer):
    visitDate = serializers.DateField(source='visit_date', required=False)
    visitTime = serializers.TimeField(source='visit_time', input_formats=TIME_FORMATS, required=False)
    doctorId = serializers.IntegerField(source='doctor_id', required=False, allow_null=True)
    departmentId = serializers.IntegerField(source='department_id', required=False, allow_null=True)
    reasonForVisit = serializers.CharField(source='reason_for_visit', required=False)
    symptoms = serializers.CharField(required=False, allow_blank=True)
    previousDiagnosis = serializers.CharField(source='previous_diagnosis', required=False, allow_blank=True)
    currentDiagnosis = serializers.CharField(source='current_diagnosis', required=False, allow_blank=True)
    consultationFee = serializers.DecimalField(source='consultation_fee', max_digits=10, decimal_places=2,
                                               min_value=0, required=False, allow_null=True)
    paymentMode = serializers.CharField(source='payment_mode', max_length=32, required=False, allow_blank=True)
    paymentStatus = serializers.ChoiceField(source='payment_status',
                                            choices=[c for c, _ in PatientRevisit.PAYMENT_STATUS_CHOICES],
                                            required=False)
    visitType = serializers.ChoiceField(source='visit_type', choices=[c for c, _ in PatientRevisit.VISIT_TYPE_CHOICES],
                                        required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate_reasonForVisit(self, v):
        v = clean_text(v)
        if not v:
            raise serializers.ValidationError('reason for visit cannot be blank')
        return v

    def validate_symptoms(self, v):
        return clean_text(v)

    def validate_previousDiagnosis(self, v):
        return clean_text(v)

    def validate_currentDiagnosis(self, v):
        return clean_text(v)

    def validate_notes(self, v):
        return clean_text(v)


class RevisitCreateSerializer(RevisitFieldsSerializer):
    """A return visit with an optional queue entry and consultation booking."""
    reasonForVisit = serializers.CharField(source='reason_for_visit')
    addToQueue = serializers.BooleanField(source='add_to_queue', required=False, default=False)
    appointment = AppointmentRequestSerializer(required=False, allow_null=True)


class RevisitListQuerySerializer(serializers.Serializer):
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    doctorId = serializers.IntegerField(min_value=1, required=False)
    visitType = serializers.ChoiceField(choices=[c for c, _ in PatientRevisit.VISIT_TYPE_CHOICES], required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)
