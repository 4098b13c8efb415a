#checkout.py
#Order assembly: validation, cost quote and the order insert.
#Side effects (material deduction, webhook, email) are queued in the order's outbox.

import logging
from datetime import datetime

from storefront.errors import ValidationError
from storefront.models.order import OrderStatus, insert_order, new_outbox, next_order_number
from storefront.models.product import get_products_by_ids, release_stock, reserve_stock
from storefront.models.shipping_config import get_shipping_config, list_zones
from storefront.utils.cart import whole_number
from storefront.utils.packaging import estimate_package
from storefront.utils.pricing import price_for_sale_type
from storefront.utils.shipping import (
    ADDRESS_REQUIRED_METHODS, SHIPPING_METHODS, _threshold_met, calculate_shipping_cost,
)

REQUIRED_CUSTOMER_FIELDS = ('customer_name', 'customer_email', 'customer_phone', 'customer_province')
OPTIONAL_CUSTOMER_FIELDS = ('customer_address', 'customer_city', 'customer_postal_code')


def normalize_items(items):
    """Client cart lines with integer ``product_id`` and ``quantity``.

    A line that is not an object, or carries a non-integer id or quantity,
    raises ValidationError naming the offending line.
    """
    lines = []
    for number, item in enumerate(items or [], start=1):
        if not isinstance(item, dict):
            raise ValidationError('Invalid cart line', details={'fields': {'items': f'Line {number} is not an item'}})
        try:
            product_id = whole_number(item.get('product_id'), 'product_id')
            quantity = whole_number(item.get('quantity'), 'quantity')
        except ValidationError as e:
            field = next(iter(e.details['fields']))
            raise ValidationError(
                f'Line {number}: {e.message}', details={'fields': {'items': f'Line {number} has an invalid {field}'}},
            )
        lines.append(dict(item, product_id=product_id, quantity=quantity))
    return lines


def validate_checkout(customer, items, shipping_method):
    errors = {}
    customer = customer or {}
    for field in REQUIRED_CUSTOMER_FIELDS:
        if not str(customer.get(field) or '').strip():
            errors[field] = 'Required'
    if customer.get('customer_email') and '@' not in str(customer['customer_email']):
        errors['customer_email'] = 'Invalid email'
    if not items:
        errors['items'] = 'The cart is empty'
    else:
        try:
            lines = normalize_items(items)
        except ValidationError as e:
            errors.update(e.details['fields'])
        else:
            if any(line['quantity'] < 1 for line in lines):
                errors['items'] = 'Every item needs quantity >= 1'
    if not shipping_method:
        errors['shipping_method'] = 'Choose a shipping method'
    elif shipping_method not in SHIPPING_METHODS:
        errors['shipping_method'] = f'Unknown shipping method: {shipping_method}'
    elif shipping_method in ADDRESS_REQUIRED_METHODS and not str(customer.get('customer_address') or '').strip():
        errors['customer_address'] = 'An address is required for this shipping method'
    if shipping_method == 'correo' and not str(customer.get('customer_postal_code') or '').strip():
        errors['customer_postal_code'] = 'A postal code is required for carrier shipping'
    if errors:
        raise ValidationError('Please complete the required fields', details={'fields': errors})


def price_items(db, items):
    """Rebuild order lines from the catalog so prices come from the store, not the client."""
    items = normalize_items(items)
    products = get_products_by_ids(db, [item['product_id'] for item in items])
    lines = []
    for item in items:
        product = products.get(item['product_id'])
        if product is None:
            raise ValidationError(f"Product {item['product_id']} is no longer available")
        sale_type = item.get('sale_type') or 'unit'
        price = price_for_sale_type(product, sale_type)
        if price is None:
            raise ValidationError(f"Sale type {sale_type} is not available for {product.get('name')}")
        lines.append({
            'product_id': product['id'],
            'name': product.get('name'),
            'price': price,
            'quantity': item['quantity'],
            'image': product.get('image'),
            'sale_type': sale_type,
            'selected_options': item.get('selected_options') or {},
        })
    return lines, products


def quote_checkout(db, items, shipping_method, postal_code=None, carrier_client=None):
    """Subtotal, shipping cost and total for a cart (the order's computed costs)."""
    lines, products = price_items(db, items)
    subtotal = round(sum(line['price'] * line['quantity'] for line in lines), 2)
    config = get_shipping_config(db)
    zones = list_zones(db, active_only=True) if shipping_method == 'moto' else []

    carrier_quote = None
    estimated_delivery = None
    package = None
    if shipping_method == 'correo' and not _threshold_met(subtotal, config.get('correo_free_threshold')):
        package = estimate_package([dict(products[line['product_id']], quantity=line['quantity']) for line in lines])
        if carrier_client is not None:
            try:
                quote = carrier_client.quote(postal_code, package)
            except Exception as e:
                # Only a configured fallback fee may replace a failed quote
                if config.get('carrier_fallback_fee') is None:
                    raise
                logging.warning(f"[Checkout] carrier quote failed, fallback fee configured: {e}")
            else:
                carrier_quote = quote['cost']
                estimated_delivery = quote.get('estimated_delivery')

    shipping_cost = calculate_shipping_cost(
        shipping_method, subtotal, config, zones, postal_code=postal_code, carrier_quote=carrier_quote,
    )
    costs = {
        'subtotal': subtotal,
        'shipping_cost': round(float(shipping_cost), 2),
        'total': round(subtotal + float(shipping_cost), 2),
        'estimated_delivery': estimated_delivery,
        'package': package,
        'items': lines,
    }
    logging.info(f"[Checkout] quote method={shipping_method} subtotal={subtotal} shipping={shipping_cost} total={costs['total']}")
    return costs


def create_order(db, customer, items, shipping_method, costs, notes=None, order_number_prefix='ORD'):
    """Validate, reserve stock and persist a new ``pending`` order.

    ``items`` are priced order lines (see ``price_items``); ``costs`` carries
    subtotal, shipping_cost, total and optionally estimated_delivery.
    """
    validate_checkout(customer, items, shipping_method)
    reservations = reserve_stock(db, items)

    now = datetime.utcnow()
    order = {field: (customer.get(field) or None) for field in REQUIRED_CUSTOMER_FIELDS + OPTIONAL_CUSTOMER_FIELDS}
    order.update({
        'items': items,
        'subtotal': costs['subtotal'],
        'shipping_cost': costs['shipping_cost'],
        'total': costs['total'],
        'shipping_method': shipping_method,
        'status': OrderStatus.PENDING.value,
        'tracking_number': None,
        'payment_id': None,
        'payment_status': None,
        'notes': notes or None,
        'payments': [],
        'amount_paid': 0,
        'balance_due': costs['total'],
        'promised_delivery_date': None,
        'estimated_delivery': costs.get('estimated_delivery'),
        'outbox': new_outbox(now),
        'created_at': now,
        'updated_at': now,
    })
    try:
        order['order_number'] = next_order_number(db, order_number_prefix, now)
        insert_order(db, order)
    except Exception:
        release_stock(db, reservations)
        raise
    logging.info(f"[Checkout] Order {order['order_number']} created | id={order['_id']} | total={order['total']}")
    return order
