import datetime
import re

from rest_framework import serializers

from payments.pricing import PAYMENT_TYPES, SERVICE_CATALOG

PHONE_RE = re.compile(r'^[+]?[0-9\s\-()]{8,15}$')
DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')

REQUIRED = {
    'required': 'Missing required fields',
    'blank': 'Missing required fields',
    'null': 'Missing required fields',
}


def strip_angle_brackets(value):
    return value.replace('<', '').replace('>', '') if value else ''


class BookingRequestSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100, error_messages=dict(REQUIRED, max_length='Name too long'))
    email = serializers.EmailField(error_messages=dict(REQUIRED, invalid='Invalid email format'))
    phone = serializers.CharField(required=False, allow_blank=True, allow_null=True, default='')
    address = serializers.CharField(max_length=500, error_messages=dict(REQUIRED, max_length='Address too long'))
    service = serializers.CharField(error_messages=REQUIRED)
    date = serializers.CharField(error_messages=REQUIRED)
    slot = serializers.CharField(required=False, allow_blank=True, allow_null=True, default='')
    notes = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default='', max_length=1000,
        error_messages={'max_length': 'Notes too long'},
    )
    paymentIntentId = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    paymentType = serializers.ChoiceField(
        choices=PAYMENT_TYPES, required=False, allow_blank=True, allow_null=True, default=None,
        error_messages={'invalid_choice': 'Invalid payment type'},
    )

    def validate_name(self, value):
        return strip_angle_brackets(value)

    def validate_address(self, value):
        return strip_angle_brackets(value)

    def validate_notes(self, value):
        return strip_angle_brackets(value)

    def validate_phone(self, value):
        if value and not PHONE_RE.match(value):
            raise serializers.ValidationError('Invalid phone number format')
        return value

    def validate_service(self, value):
        if value not in SERVICE_CATALOG:
            raise serializers.ValidationError('Invalid service type')
        return value

    def validate_date(self, value):
        if not DATE_RE.match(value):
            raise serializers.ValidationError('Invalid date format')
        try:
            return datetime.date.fromisoformat(value)
        except ValueError:
            raise serializers.ValidationError('Invalid date format')


def first_error(errors):
    """Flatten DRF ``serializer.errors`` to the first message."""
    if isinstance(errors, dict):
        for field_errors in errors.values():
            return first_error(field_errors)
    if isinstance(errors, list) and errors:
        return first_error(errors[0])
    return str(errors)
