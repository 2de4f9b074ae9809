from django.conf import settings
from rest_framework.throttling import SimpleRateThrottle


class ClientIpRateThrottle(SimpleRateThrottle):
    """
    Per-IP request budget shared by every route, authenticated or not.

    The rate is read from ``API_RATE_LIMIT`` on each request so it can be
    changed with ``override_settings``; ``None`` turns throttling off.
    """

    scope = "client"

    def get_rate(self):
        return getattr(settings, "API_RATE_LIMIT", None)

    def get_cache_key(self, request, view):
        ident = self.get_ident(request)
        # IPv6 and IPv4 loopback share one bucket.
        if ident == "::1":
            ident = "127.0.0.1"
        return self.cache_format % {"scope": self.scope, "ident": ident}
