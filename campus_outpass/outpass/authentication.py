from rest_framework.authentication import TokenAuthentication


class BearerTokenAuthentication(TokenAuthentication):
    """Accepts `Authorization: Bearer <token>` as sent by the web client."""
    keyword = 'Bearer'

    def authenticate(self, request):
        user_auth = super().authenticate(request)
        if user_auth is not None:
            return user_auth
        # Older clients still send the DRF default keyword.
        self.keyword = 'Token'
        try:
            return super().authenticate(request)
        finally:
            self.keyword = 'Bearer'
