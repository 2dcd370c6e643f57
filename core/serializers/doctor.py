from rest_framework import serializers

from core.models import Doctor
from core.services.slots import SESSION_ORDER, to_minutes

TIME_PATTERN = r'^([01]\d|2[0-3]):[0-5]\d$'


class SessionSerializer(serializers.Serializer):
    startTime = serializers.RegexField(TIME_PATTERN)
    endTime = serializers.RegexField(r'^([01]\d|2[0-3]):[0-5]\d$|^24:00$')
    maxPatients = serializers.IntegerField(min_value=1, max_value=100, required=False, default=8)

    def validate(self, attrs):
        if to_minutes(attrs['endTime']) <= to_minutes(attrs['startTime']):
            raise serializers.ValidationError('session must end after it starts')
        return attrs


class DoctorSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150, required=False)
    password = serializers.CharField(min_length=8, required=False, write_only=True)
    firstName = serializers.CharField(source='first_name', max_length=150)
    lastName = serializers.CharField(source='last_name', max_length=150, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True)
    licenseNumber = serializers.CharField(source='license_number', max_length=64, required=False, allow_blank=True)
    specialization = serializers.CharField(max_length=128)
    qualification = serializers.CharField(max_length=255, required=False, allow_blank=True)
    departmentId = serializers.IntegerField(source='department_id', required=False, allow_null=True)
    departmentName = serializers.CharField(source='department_name', max_length=255, required=False,
                                           allow_blank=True)
    yearsOfExperience = serializers.IntegerField(source='years_of_experience', min_value=0, required=False)
    consultationFee = serializers.DecimalField(source='consultation_fee', max_digits=10, decimal_places=2,
                                               min_value=0, required=False)
    roomNumber = serializers.CharField(source='room_number', max_length=20, required=False, allow_blank=True)
    floorNumber = serializers.IntegerField(source='floor_number', required=False, allow_null=True)
    sessions = serializers.DictField(child=SessionSerializer(), required=False)
    availableSessions = serializers.ListField(source='available_sessions',
                                              child=serializers.ChoiceField(choices=SESSION_ORDER), required=False)
    workingDays = serializers.ListField(source='working_days',
                                        child=serializers.IntegerField(min_value=0, max_value=6), required=False)
    emergencyAvailable = serializers.BooleanField(source='emergency_available', required=False)
    maxPatientsPerDay = serializers.IntegerField(source='max_patients_per_day', min_value=1, required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in Doctor.STATUS_CHOICES], required=False)

    def validate_sessions(self, v):
        unknown = set(v) - set(SESSION_ORDER)
        if unknown:
            raise serializers.ValidationError(f'unknown sessions: {sorted(unknown)}')
        return v

    def validate_workingDays(self, v):
        return sorted(set(v))


class DoctorListQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=64, required=False, allow_blank=True)
    specialization = serializers.CharField(max_length=128, required=False)
    departmentId = serializers.IntegerField(min_value=1, required=False)
    onDutyOnly = serializers.BooleanField(required=False, default=False)
    status = serializers.ChoiceField(choices=['active', 'inactive', 'all'], required=False, default='active')
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)


class AvailabilitySerializer(serializers.Serializer):
    available = serializers.BooleanField()


class AvailableDoctorsQuerySerializer(serializers.Serializer):
    date = serializers.DateField()
    time = serializers.TimeField(input_formats=['%H:%M', '%H:%M:%S'], required=False)
    specialization = serializers.CharField(max_length=128, required=False)


class ShiftSerializer(serializers.Serializer):
    startAt = serializers.DateTimeField()
    endAt = serializers.DateTimeField()


class DepartmentSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    code = serializers.CharField(max_length=20, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
