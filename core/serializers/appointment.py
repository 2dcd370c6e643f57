import bleach
from rest_framework import serializers

from core.models import Appointment

TIME_FORMATS = ['%H:%M', '%H:%M:%S']


def _clean(v):
    return bleach.clean((v or '').strip(), strip=True)


class AppointmentRequestSerializer(serializers.Serializer):
    """Booking details without the patient, used inside registration."""
    doctorId = serializers.IntegerField(source='doctor_id', min_value=1)
    date = serializers.DateField(source='appointment_date')
    time = serializers.TimeField(source='appointment_time', input_formats=TIME_FORMATS)
    durationMinutes = serializers.IntegerField(source='duration_minutes', min_value=1, required=False)
    type = serializers.ChoiceField(source='appointment_type', choices=[c for c, _ in Appointment.TYPE_CHOICES],
                                   required=False)
    isEmergency = serializers.BooleanField(source='is_emergency', required=False, default=False)
    symptoms = serializers.CharField(required=False, allow_blank=True)
    chiefComplaint = serializers.CharField(source='chief_complaint', required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate_symptoms(self, v):
        return _clean(v)

    def validate_chiefComplaint(self, v):
        return _clean(v)

    def validate_notes(self, v):
        return _clean(v)


class AppointmentCreateSerializer(AppointmentRequestSerializer):
    patientId = serializers.IntegerField(source='patient_id', min_value=1, required=False)
    uhid = serializers.CharField(max_length=20, required=False)

    def validate(self, attrs):
        if not attrs.get('patient_id') and not attrs.get('uhid'):
            raise serializers.ValidationError({'patientId': 'patientId or uhid is required'})
        return attrs


class AppointmentListQuerySerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1, required=False)
    doctorId = serializers.IntegerField(min_value=1, required=False)
    date = serializers.DateField(required=False)
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in Appointment.STATUS_CHOICES], required=False)
    type = serializers.ChoiceField(choices=[c for c, _ in Appointment.TYPE_CHOICES], required=False)
    q = serializers.CharField(max_length=64, required=False, allow_blank=True)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)


class AppointmentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in Appointment.STATUS_CHOICES])


class RescheduleSerializer(serializers.Serializer):
    date = serializers.DateField()
    time = serializers.TimeField(input_formats=TIME_FORMATS)


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def validate_reason(self, v):
        return _clean(v)


class MedicalInfoSerializer(serializers.Serializer):
    diagnosis = serializers.CharField(required=False, allow_blank=True)
    treatmentPlan = serializers.CharField(source='treatment_plan', required=False, allow_blank=True)
    prescriptions = serializers.ListField(child=serializers.DictField(), required=False)
    followUpRequired = serializers.BooleanField(source='follow_up_required', required=False)
    followUpDate = serializers.DateField(source='follow_up_date', required=False, allow_null=True)
    nextAppointmentDate = serializers.DateField(source='next_appointment_date', required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate_diagnosis(self, v):
        return _clean(v)

    def validate_treatmentPlan(self, v):
        return _clean(v)


class SlotQuerySerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1)
    date = serializers.DateField()
    emergency = serializers.BooleanField(required=False, default=False)


class ScheduleQuerySerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1)
    date = serializers.DateField(required=False)
