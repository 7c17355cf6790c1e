import logging
import time
from functools import wraps
from threading import Lock

from django.conf import settings
from django.http import JsonResponse

logger = logging.getLogger(__name__)


class RateLimiter:
    """``allow(key)`` records a hit for ``key`` and says whether it is within the limit."""

    def allow(self, key):
        raise NotImplementedError

    def reset(self):
        raise NotImplementedError


class SlidingWindowRateLimiter(RateLimiter):
    """
    Per-process limiter: at most ``max_requests`` hits per key inside the
    trailing ``window_seconds``. State is lost on restart.
    """

    def __init__(self, max_requests, window_seconds, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._hits = {}
        self._last_prune = clock()
        self._lock = Lock()

    def allow(self, key):
        now = self.clock()
        with self._lock:
            if now - self._last_prune >= self.window_seconds:
                self._prune(now)
            hits = [t for t in self._hits.get(key, []) if now - t < self.window_seconds]
            if len(hits) >= self.max_requests:
                self._hits[key] = hits
                return False
            hits.append(now)
            self._hits[key] = hits
            return True

    def _prune(self, now):
        for key in list(self._hits):
            hits = [t for t in self._hits[key] if now - t < self.window_seconds]
            if hits:
                self._hits[key] = hits
            else:
                del self._hits[key]
        self._last_prune = now

    def reset(self):
        with self._lock:
            self._hits.clear()


booking_limiter = SlidingWindowRateLimiter(settings.BOOKING_RATE_LIMIT, settings.RATE_LIMIT_WINDOW_SECONDS)
payment_limiter = SlidingWindowRateLimiter(settings.PAYMENT_RATE_LIMIT, settings.RATE_LIMIT_WINDOW_SECONDS)
admin_limiter = SlidingWindowRateLimiter(settings.BOOKING_RATE_LIMIT, settings.RATE_LIMIT_WINDOW_SECONDS)


def client_address(request):
    return request.META.get('REMOTE_ADDR', 'unknown')


def rate_limited(limiter, message='Too many requests. Please try again later.'):
    def decorator(view):
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            key = client_address(request)
            if not limiter.allow(key):
                logger.warning("Rate limit exceeded for %s on %s", key, request.path)
                return JsonResponse({'error': message}, status=429)
            return view(request, *args, **kwargs)
        return wrapper
    return decorator
