import re

import bleach
from rest_framework import serializers

from core.models import Patient
from core.serializers.appointment import AppointmentRequestSerializer

PHONE_SEPARATORS = re.compile(r'[\s\-().+]')

# fields each registration mode cannot do without
MODE_REQUIRED = {
    'standard': ('first_name', 'gender', 'phone'),
    'quick': ('first_name', 'gender', 'phone'),
    'emergency': ('gender', 'primary_complaint'),
}


def clean_text(v):
    return bleach.clean((v or '').strip(), strip=True)


def normalize_phone(v: str) -> str:
    v = clean_text(v)
    if not v:
        return ''
    digits = PHONE_SEPARATORS.sub('', v)
    if not digits.isdigit() or not (7 <= len(digits) <= 15):
        raise serializers.ValidationError('phone must contain 7 to 15 digits')
    return digits


class PatientFieldsSerializer(serializers.Serializer):
    firstName = serializers.CharField(source='first_name', max_length=128, required=False, allow_blank=True)
    lastName = serializers.CharField(source='last_name', max_length=128, required=False, allow_blank=True)
    gender = serializers.ChoiceField(choices=[c for c, _ in Patient.GENDER_CHOICES], required=False)
    dateOfBirth = serializers.DateField(source='date_of_birth', required=False, allow_null=True)
    age = serializers.IntegerField(min_value=0, max_value=150, required=False, allow_null=True)
    maritalStatus = serializers.CharField(source='marital_status', max_length=20, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True)
    city = serializers.CharField(max_length=64, required=False, allow_blank=True)
    state = serializers.CharField(max_length=64, required=False, allow_blank=True)
    pincode = serializers.CharField(max_length=12, required=False, allow_blank=True)
    bloodGroup = serializers.CharField(source='blood_group', max_length=5, required=False, allow_blank=True)
    allergies = serializers.CharField(required=False, allow_blank=True)
    medicalHistory = serializers.CharField(source='medical_history', required=False, allow_blank=True)
    currentMedications = serializers.CharField(source='current_medications', required=False, allow_blank=True)
    admissionType = serializers.ChoiceField(source='admission_type', choices=[c for c, _ in Patient.ADMISSION_CHOICES],
                                            required=False)
    primaryComplaint = serializers.CharField(source='primary_complaint', required=False, allow_blank=True)
    consultingDoctorId = serializers.IntegerField(source='consulting_doctor_id', required=False, allow_null=True)
    departmentId = serializers.IntegerField(source='department_id', required=False, allow_null=True)
    guardianName = serializers.CharField(source='guardian_name', max_length=128, required=False, allow_blank=True)
    guardianRelationship = serializers.CharField(source='guardian_relationship', max_length=64, required=False,
                                                 allow_blank=True)
    guardianPhone = serializers.CharField(source='guardian_phone', max_length=32, required=False, allow_blank=True)
    emergencyContactName = serializers.CharField(source='emergency_contact_name', max_length=128, required=False,
                                                 allow_blank=True)
    emergencyContactPhone = serializers.CharField(source='emergency_contact_phone', max_length=32, required=False,
                                                  allow_blank=True)
    emergencyContactRelationship = serializers.CharField(source='emergency_contact_relationship', max_length=64,
                                                         required=False, allow_blank=True)
    insuranceProvider = serializers.CharField(source='insurance_provider', max_length=128, required=False,
                                              allow_blank=True)
    insuranceNumber = serializers.CharField(source='insurance_number', max_length=64, required=False,
                                            allow_blank=True)

    def validate_firstName(self, v):
        return clean_text(v)

    def validate_lastName(self, v):
        return clean_text(v)

    def validate_phone(self, v):
        return normalize_phone(v)

    def validate_guardianPhone(self, v):
        return normalize_phone(v)

    def validate_emergencyContactPhone(self, v):
        return normalize_phone(v)

    def validate_primaryComplaint(self, v):
        return clean_text(v)

    def validate_address(self, v):
        return clean_text(v)


class PatientRegisterSerializer(PatientFieldsSerializer):
    """Registration in one of three modes with an optional queue entry and booking."""
    mode = serializers.ChoiceField(choices=['standard', 'quick', 'emergency'], required=False, default='standard')
    addToQueue = serializers.BooleanField(source='add_to_queue', required=False, default=False)
    appointment = AppointmentRequestSerializer(required=False, allow_null=True)

    def validate(self, attrs):
        mode = attrs.get('mode', 'standard')
        errors = {}
        for field in MODE_REQUIRED[mode]:
            if not attrs.get(field):
                name = self.fields_by_source().get(field, field)
                errors[name] = f'required for {mode} registration'
        if mode == 'standard' and not attrs.get('date_of_birth') and attrs.get('age') is None:
            errors['dateOfBirth'] = 'date of birth or age is required'
        if errors:
            raise serializers.ValidationError(errors)
        return attrs

    def fields_by_source(self) -> dict:
        return {f.source: name for name, f in self.fields.items()}


class PatientUpdateSerializer(PatientFieldsSerializer):
    status = serializers.ChoiceField(choices=[c for c, _ in Patient.STATUS_CHOICES], required=False)


class PatientListQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=64, required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=[c for c, _ in Patient.STATUS_CHOICES], required=False)
    registrationStatus = serializers.ChoiceField(choices=['pending_vitals', 'completed'], required=False)
    departmentId = serializers.IntegerField(min_value=1, required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)


class VitalsSerializer(serializers.Serializer):
    bloodPressure = serializers.RegexField(r'^\s*\d{2,3}\s*/\s*\d{2,3}\s*$', required=False, allow_blank=True)
    bpSystolic = serializers.IntegerField(source='bp_systolic', required=False, allow_null=True)
    bpDiastolic = serializers.IntegerField(source='bp_diastolic', required=False, allow_null=True)
    heartRate = serializers.IntegerField(source='heart_rate', required=False, allow_null=True)
    temperature = serializers.DecimalField(max_digits=4, decimal_places=1, required=False, allow_null=True)
    respiratoryRate = serializers.IntegerField(source='respiratory_rate', required=False, allow_null=True)
    oxygenSaturation = serializers.IntegerField(source='oxygen_saturation', required=False, allow_null=True)
    weight = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, allow_null=True)
    height = serializers.DecimalField(max_digits=5, decimal_places=1, required=False, allow_null=True)
    painScale = serializers.IntegerField(source='pain_scale', required=False, allow_null=True)
    bloodGlucose = serializers.DecimalField(source='blood_glucose', max_digits=5, decimal_places=1, required=False,
                                            allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate_notes(self, v):
        return clean_text(v)

    def validate(self, attrs):
        # "120/80" is accepted in place of the two separate readings
        pressure = attrs.pop('bloodPressure', '')
        if pressure:
            systolic, diastolic = (int(p) for p in pressure.split('/'))
            attrs.setdefault('bp_systolic', systolic)
            attrs.setdefault('bp_diastolic', diastolic)
        return attrs
