from django.conf import settings
from django.utils.crypto import constant_time_compare
from rest_framework import authentication, exceptions


class ServiceClient:
    """Caller identity for requests carrying the shared service API key."""

    is_authenticated = True
    is_anonymous = False

    def __str__(self):
        return "service-client"


class ServiceApiKeyAuthentication(authentication.BaseAuthentication):
    header = "x-api-key"

    def authenticate(self, request):
        provided = request.headers.get(self.header)
        if not provided:
            return None
        expected = getattr(settings, "SERVICE_API_KEY", "")
        if not expected or not constant_time_compare(provided, expected):
            raise exceptions.AuthenticationFailed("Unauthorized")
        return ServiceClient(), provided

    def authenticate_header(self, request):
        return "Api-Key"
