from django.http import JsonResponse


class BookingServiceError(Exception):
    """Base for errors reported to API callers as ``{"error": ..., "code": ...}``."""

    status_code = 400
    code = 'error'
    message = 'Request failed'

    def __init__(self, message=None, code=None):
        self.message = message or self.message
        if code:
            self.code = code
        super().__init__(self.message)

    def to_response(self):
        return JsonResponse({'error': self.message, 'code': self.code}, status=self.status_code)


class BookingValidationError(BookingServiceError):
    code = 'invalid_request'
    message = 'Invalid booking request'


class UnknownServiceError(BookingServiceError):
    code = 'unknown_service'
    message = 'Invalid service type'


class PaymentVerificationError(BookingServiceError):
    code = 'verification_failed'
    message = 'Payment verification failed'


class PaymentNotCompletedError(BookingServiceError):
    code = 'payment_not_completed'
    message = 'Payment not completed'


class PaymentAmountMismatchError(BookingServiceError):
    code = 'amount_mismatch'
    message = 'Payment amount verification failed'


class PaymentCurrencyError(BookingServiceError):
    code = 'currency_mismatch'
    message = 'Invalid payment currency'


class WebhookSignatureError(BookingServiceError):
    code = 'invalid_signature'
    message = 'Invalid signature'


class ProviderUnavailableError(BookingServiceError):
    status_code = 502
    code = 'provider_unavailable'
    message = 'Payment provider unavailable'


class PersistenceError(BookingServiceError):
    status_code = 500
    code = 'persistence_failed'
    message = 'Failed to save booking'


class PhotoUnavailableError(BookingServiceError):
    status_code = 500
    code = 'photo_unavailable'
    message = 'Could not read photo files for email'
