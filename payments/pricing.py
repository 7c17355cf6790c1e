"""
Service catalog and deposit policy.

All amounts are integer cents. The catalog is the only source of prices:
anything a client sends about money is ignored.
"""
from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

from .errors import UnknownServiceError

Service = namedtuple('Service', ['code', 'name', 'price_cents'])

DEPOSIT_RATE = Decimal('0.30')
MINIMUM_DEPOSIT_CENTS = 3000

PAYMENT_TYPE_DEPOSIT = 'deposit'
PAYMENT_TYPE_FULL = 'full'
PAYMENT_TYPES = (PAYMENT_TYPE_DEPOSIT, PAYMENT_TYPE_FULL)

SERVICE_CATALOG = {
    service.code: service for service in [
        # Residential homes, inside & out
        Service('apartmentflat', 'Apartment/Flat Windows (Inside & Out)', 15000),
        Service('small_home', 'Small Single-Storey Home (2-3 bed)', 20000),
        Service('large_home', 'Large Single-Storey Home (4+ bed)', 27000),
        Service('twostory_3bed', 'Two-Storey Home (3 bed)', 32000),
        Service('twostory_4bed', 'Two-Storey Home (4+ bed)', 36000),
        # Residential homes, exterior only
        Service('apartmentflat_ext', 'Apartment/Flat Windows (Exterior Only)', 9000),
        Service('small_home_ext', 'Small Home Windows (Exterior Only)', 12000),
        Service('large_home_ext', 'Large Home Windows (Exterior Only)', 16200),
        Service('twostory_3bed_ext', 'Two-Storey Home Windows (Exterior Only, 3 bed)', 19200),
        Service('twostory_4bed_ext', 'Two-Storey Home Windows (Exterior Only, 4+ bed)', 21600),
        # Retail storefronts
        Service('small_shopfront', 'Small Shopfront (Outside Only)', 2500),
        Service('shopfront_full', 'Shopfront (Inside & Outside)', 3500),
        Service('deepclean', 'One-off Deep Clean', 6000),
    ]
}


def get_service(code):
    try:
        return SERVICE_CATALOG[code]
    except (KeyError, TypeError):
        raise UnknownServiceError()


def price_of(code):
    return get_service(code).price_cents


def deposit_of(full_price_cents):
    """
    30% of the full price rounded half-up to whole dollars, at least $30,
    never more than the full price.
    """
    whole_dollars = (Decimal(full_price_cents) * DEPOSIT_RATE / 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    deposit = max(int(whole_dollars) * 100, MINIMUM_DEPOSIT_CENTS)
    return min(full_price_cents, deposit)


def offers_deposit(code):
    full_price = price_of(code)
    return deposit_of(full_price) < full_price


def expected_charge(code, payment_type):
    """Amount charged when a payment intent is created for ``code``."""
    full_price = price_of(code)
    if payment_type == PAYMENT_TYPE_DEPOSIT:
        return deposit_of(full_price)
    return full_price


def format_cents(cents):
    return f"${cents / 100:,.2f}"
