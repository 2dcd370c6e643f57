from rest_framework import serializers


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField(required=False, allow_blank=True)
    account = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField(trim_whitespace=False)

    def validate(self, attrs):
        # ``account`` is accepted as an alias of ``username``
        username = (attrs.get('username') or attrs.get('account') or '').strip()
        if not username:
            raise serializers.ValidationError({'username': 'username is required'})
        attrs['username'] = username
        return attrs

    def validate_password(self, v):
        if not v:
            raise serializers.ValidationError('password is required')
        return v
