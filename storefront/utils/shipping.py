#shipping.py
#Shipping cost per method: pickup, local courier (zones) and national carrier (live quote).

import logging
import re

from storefront.errors import CarrierQuoteError, ValidationError

SHIPPING_METHODS = ('retiro', 'moto', 'correo', 'to_coordinate')
FREE_METHODS = ('retiro', 'to_coordinate')
ADDRESS_REQUIRED_METHODS = ('moto', 'correo')

SHIPPING_METHOD_LABELS = {
    'moto': 'Envío en Moto',
    'correo': 'Correo / MercadoEnvíos',
    'retiro': 'Retiro en Local',
    'to_coordinate': 'A Coordinar',
}

DEFAULT_SHIPPING_CONFIG = {
    'moto_free_threshold': 40000,
    'moto_base_fee': 0,
    'correo_free_threshold': 40000,
    'carrier_fallback_fee': None,
    'store_postal_code': '',
}


def postal_code_number(postal_code):
    """Numeric part of a postal code ("1842", "B1842ABC" -> 1842), or None."""
    if postal_code is None:
        return None
    match = re.search(r'\d{4}', str(postal_code))
    return int(match.group(0)) if match else None


def find_zone(postal_code, zones):
    """First active zone whose range contains the postal code."""
    number = postal_code_number(postal_code)
    if number is None:
        return None
    for zone in zones:
        if zone.get('active') is False:
            continue
        low = postal_code_number(zone.get('postal_code_from'))
        high = postal_code_number(zone.get('postal_code_to'))
        if low is None or high is None:
            continue
        if low <= number <= high:
            return zone
    return None


def _threshold_met(subtotal, threshold):
    return threshold is not None and threshold > 0 and subtotal >= threshold


def calculate_shipping_cost(method, subtotal, config=None, zones=(), postal_code=None, carrier_quote=None):
    """Shipping cost for ``method``.

    ``carrier_quote`` is the live carrier cost for ``correo`` (None when the
    quote failed or was not requested).
    """
    config = dict(DEFAULT_SHIPPING_CONFIG, **(config or {}))
    subtotal = float(subtotal or 0)

    if method in FREE_METHODS:
        return 0

    if method == 'moto':
        if _threshold_met(subtotal, config.get('moto_free_threshold')):
            return 0
        zone = find_zone(postal_code, zones)
        if zone:
            # A zone may offer a lower free-shipping threshold than the global one
            if _threshold_met(subtotal, zone.get('free_threshold')):
                return 0
            logging.info(f"[Shipping] moto zone={zone.get('name')} postal_code={postal_code} price={zone.get('price')}")
            return float(zone.get('price') or 0)
        return float(config.get('moto_base_fee') or 0)

    if method == 'correo':
        if _threshold_met(subtotal, config.get('correo_free_threshold')):
            return 0
        if carrier_quote is not None and carrier_quote > 0:
            return float(carrier_quote)
        fallback = config.get('carrier_fallback_fee')
        if fallback is not None:
            logging.warning(f"[Shipping] carrier quote unavailable, using configured fallback fee {fallback}")
            return float(fallback)
        raise CarrierQuoteError(
            'Could not quote carrier shipping. Choose another shipping method or contact support.',
            details={'shipping_method': method},
        )

    raise ValidationError(f'Unknown shipping method: {method}', details={'shipping_method': method})
