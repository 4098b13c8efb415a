#pricing.py
#Sale-type pricing for catalog products (unit / pack / wholesale).
#Pure functions of the product fields; the cart and the checkout both use them.

SALE_TYPES = ('unit', 'pack', 'wholesale')

DEFAULT_UNITS_PER_PACK = 1
DEFAULT_PACK_DISCOUNT = 0
DEFAULT_WHOLESALE_UNITS = 20
DEFAULT_WHOLESALE_DISCOUNT = 20


def _number(value, default, positive=False):
    # Missing or non-numeric values fall back to the default; unit counts must be positive
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    if positive and value <= 0:
        return default
    return value


def round_half_up(value):
    # Python's round() is banker's rounding; prices and weights round .5 up
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def calculate_sale_prices(product):
    """Return the price of every sale type and which of them are enabled."""
    price = float(product.get('price') or 0)
    units_per_pack = _number(product.get('units_per_pack'), DEFAULT_UNITS_PER_PACK, positive=True)
    pack_discount = _number(product.get('pack_discount'), DEFAULT_PACK_DISCOUNT)
    wholesale_units = _number(product.get('wholesale_units'), DEFAULT_WHOLESALE_UNITS, positive=True)
    wholesale_discount = _number(product.get('wholesale_discount'), DEFAULT_WHOLESALE_DISCOUNT)

    pack_price = round_half_up(price * units_per_pack * (1 - pack_discount / 100))
    wholesale_price = round_half_up(price * wholesale_units * (1 - wholesale_discount / 100))

    enabled = {
        'unit': product.get('unit_enabled') is not False,
        'pack': bool(product.get('pack_enabled')),
        'wholesale': bool(product.get('mayorista_enabled')),
    }
    available = [sale_type for sale_type in SALE_TYPES if enabled[sale_type]]

    return {
        'unit_price': price,
        'pack_price': pack_price,
        'wholesale_price': wholesale_price,
        'units_per_pack': int(units_per_pack),
        'wholesale_units': int(wholesale_units),
        'wholesale_discount': wholesale_discount,
        'available_sale_types': available,
        'default_sale_type': available[0] if available else None,
    }


def price_for_sale_type(product, sale_type):
    """Price charged for one cart unit of ``product`` sold as ``sale_type``.

    Returns None when the sale type is unknown or disabled for the product.
    """
    prices = calculate_sale_prices(product)
    if sale_type not in prices['available_sale_types']:
        return None
    return {
        'unit': prices['unit_price'],
        'pack': prices['pack_price'],
        'wholesale': prices['wholesale_price'],
    }[sale_type]
