from rest_framework import serializers

from core.models import QueueEntry


class QueueAddSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1, required=False)
    uhid = serializers.CharField(max_length=20, required=False)
    date = serializers.DateField(required=False)
    priority = serializers.IntegerField(min_value=0, max_value=10, required=False, default=0)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True)
    doctorId = serializers.IntegerField(min_value=1, required=False)

    def validate(self, attrs):
        if not attrs.get('patientId') and not attrs.get('uhid'):
            raise serializers.ValidationError({'patientId': 'patientId or uhid is required'})
        return attrs


class QueueListQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in QueueEntry.STATUS_CHOICES], required=False)
    doctorId = serializers.IntegerField(min_value=1, required=False)


class QueueStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in QueueEntry.STATUS_CHOICES])
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)


class QueuePrioritySerializer(serializers.Serializer):
    priority = serializers.IntegerField(min_value=0, max_value=10)


class CallNextSerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
    doctorId = serializers.IntegerField(min_value=1, required=False)
