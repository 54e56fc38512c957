from rest_framework.throttling import SimpleRateThrottle


class WebhookThrottle(SimpleRateThrottle):
    """
    IP-based throttle for the payment gateway webhook (unauthenticated).
    Scope name must exist in DEFAULT_THROTTLE_RATES.
    """
    scope = "webhooks"

    def get_cache_key(self, request, view):
        ident = self.get_ident(request)
        if not ident:
            return None
        return self.cache_format % {"scope": self.scope, "ident": ident}
