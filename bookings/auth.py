import logging
from functools import wraps

from django.conf import settings
from django.http import JsonResponse
from django.utils.crypto import constant_time_compare

logger = logging.getLogger(__name__)


def require_admin(view):
    """Shared-secret bearer check for the admin API."""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not settings.ADMIN_PASSWORD:
            logger.error('ADMIN_PASSWORD is not configured')
            return JsonResponse({'error': 'Admin authentication not configured'}, status=500)

        auth_header = request.META.get('HTTP_AUTHORIZATION', '')
        if not auth_header.startswith('Bearer '):
            return JsonResponse({'error': 'Admin authentication required'}, status=401)

        if not constant_time_compare(auth_header[len('Bearer '):], settings.ADMIN_PASSWORD):
            return JsonResponse({'error': 'Invalid admin credentials'}, status=401)

        return view(request, *args, **kwargs)
    return wrapper
