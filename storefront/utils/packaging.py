#packaging.py
#Estimates a single shippable package (cm / grams) for a cart, used for carrier quotes.

import logging
import math

from storefront.utils.pricing import round_half_up

# 3D printing: PLA density with an effective infill volume factor
DENSITY_PLA_G_CM3 = 1.24
INFILL_FACTOR = 0.25
MIN_WEIGHT_3D_G = 30

# Laser cutting: plywood/MDF sheet
DENSITY_WOOD_G_CM3 = 0.7
LASER_DEFAULT_THICKNESS_MM = 3
MIN_WEIGHT_LASER_G = 50

DEFAULT_DIMENSIONS = {'width': 10, 'height': 10, 'length': 10}

STACK_COMPRESSION = 0.3
MAX_STACKED_HEIGHT = 3

PACKAGING_MARGIN = {'width': 5, 'height': 3, 'length': 10, 'weight': 100}
CARRIER_MAX = {'width': 40, 'height': 30, 'length': 50}
CARRIER_MIN_WEIGHT_G = 300

LASER_TECHNOLOGIES = ('laser', 'láser')


def is_laser(product):
    return str(product.get('technology') or '').strip().lower() in LASER_TECHNOLOGIES


def product_dimensions(product):
    dims = product.get('dimensions') or {}
    return {key: float(dims.get(key) or 0) or default for key, default in DEFAULT_DIMENSIONS.items()}


def estimate_product_weight(product):
    """Declared weight in grams, or an estimate from the bounding box and technology."""
    declared = product.get('weight')
    if declared and float(declared) > 0:
        return float(declared)

    dims = product_dimensions(product)
    if is_laser(product):
        # Flat sheet: height (cm) doubles as thickness when thicker than the default
        thickness_mm = max(round_half_up(dims['height'] * 10), LASER_DEFAULT_THICKNESS_MM)
        volume_cm3 = dims['width'] * dims['length'] * (thickness_mm / 10)
        return max(MIN_WEIGHT_LASER_G, round_half_up(volume_cm3 * DENSITY_WOOD_G_CM3))

    volume_cm3 = dims['width'] * dims['height'] * dims['length'] * INFILL_FACTOR
    return max(MIN_WEIGHT_3D_G, round_half_up(volume_cm3 * DENSITY_PLA_G_CM3))


def estimate_package(items):
    """Aggregate cart items into one package.

    ``items`` are cart lines or order lines: product fields plus ``quantity``.
    """
    width = height = length = weight = 0.0
    for item in items:
        quantity = int(item.get('quantity') or 1)
        dims = product_dimensions(item)
        width = max(width, dims['width'])
        height = max(height, dims['height'] * min(quantity, MAX_STACKED_HEIGHT))
        length += dims['length'] * STACK_COMPRESSION * quantity
        weight += estimate_product_weight(item) * quantity

    package = {
        'width': min(CARRIER_MAX['width'], math.ceil(width + PACKAGING_MARGIN['width'])),
        'height': min(CARRIER_MAX['height'], math.ceil(height + PACKAGING_MARGIN['height'])),
        'length': min(CARRIER_MAX['length'], math.ceil(length + PACKAGING_MARGIN['length'])),
        'weight': max(CARRIER_MIN_WEIGHT_G, math.ceil(weight + PACKAGING_MARGIN['weight'])),
    }
    logging.debug(f"[Packaging] {len(items)} lines -> {package}")
    return package
