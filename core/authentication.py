"""
Token authentication for staff accounts.

Clients send ``Authorization: Token <key>``.  The token lookup pulls
the user's department along so permission checks and ``/api/auth/me``
do not hit the database again.
"""
from __future__ import annotations

from rest_framework import authentication, exceptions


class TokenAuthentication(authentication.TokenAuthentication):
    keyword = 'Token'

    def authenticate_credentials(self, key):
        model = self.get_model()
        token = model.objects.select_related('user', 'user__department').filter(key=key).first()
        if token is None:
            raise exceptions.AuthenticationFailed('invalid token')
        if not token.user.is_active:
            # deactivated doctors keep their token row until logout
            raise exceptions.AuthenticationFailed('account is deactivated')
        return token.user, token
