import logging

import pytz
from flask import Blueprint, current_app, jsonify, request, session

from storefront.db import get_db, serialize_doc
from storefront.errors import CartError, NotFoundError, PaymentError, ValidationError
from storefront.models.order import get_order_by_id, get_order_by_number, status_info
from storefront.models.product import get_all_products, get_product, get_products_by_ids
from storefront.utils import cart as cart_ops
from storefront.utils.checkout import create_order, normalize_items, quote_checkout, validate_checkout
from storefront.utils.outbox import dispatch_outbox
from storefront.utils.payments import create_payment_preference
from storefront.utils.pricing import calculate_sale_prices
from storefront.utils.shipping import SHIPPING_METHOD_LABELS

main_bp = Blueprint('main', __name__)

CUSTOMER_FIELDS = (
    'customer_name', 'customer_email', 'customer_phone', 'customer_province',
    'customer_address', 'customer_city', 'customer_postal_code',
)
PUBLIC_ORDER_FIELDS = (
    'order_number', 'shipping_method', 'tracking_number', 'subtotal', 'shipping_cost',
    'total', 'estimated_delivery', 'promised_delivery_date', 'customer_name',
)


def _with_prices(product):
    return dict(product, pricing=calculate_sale_prices(product))


def _cart():
    return session.get('cart', [])


def _save_cart(cart):
    session['cart'] = cart
    session.modified = True


def _cart_response(cart, notice=None, status=200):
    return jsonify({
        'items': cart,
        'subtotal': cart_ops.cart_subtotal(cart),
        'count': cart_ops.item_count(cart),
        'notice': notice,
    }), status


def _load_product(product_id):
    try:
        product = get_product(get_db(), product_id)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid product id: {product_id}')
    if product is None:
        raise NotFoundError(f'Product {product_id} not found')
    return product


@main_bp.route('/products', methods=['GET'])
def list_products():
    products = get_all_products(get_db())
    technology = request.args.get('technology')
    if technology:
        products = [p for p in products if str(p.get('technology', '')).lower() == technology.lower()]
    return jsonify([_with_prices(p) for p in products])


@main_bp.route('/products/<int:product_id>', methods=['GET'])
def product_detail(product_id):
    return jsonify(_with_prices(_load_product(product_id)))


@main_bp.route('/cart', methods=['GET'])
def view_cart():
    cart = _cart()
    if not cart:
        return _cart_response(cart)
    products = get_products_by_ids(get_db(), [item['product_id'] for item in cart])
    cart, notice = cart_ops.sync_with_catalog(cart, products.values())
    _save_cart(cart)
    return _cart_response(cart, notice)


@main_bp.route('/cart', methods=['POST'])
def replace_cart():
    """Rebuild the session cart from a client-side copy, checked against current stock."""
    data = request.get_json(silent=True) or {}
    lines = []
    rejected = []
    for line in data.get('items') or []:
        try:
            if isinstance(line, dict):
                line = dict(line, quantity=line.get('quantity', 1))
            lines.extend(normalize_items([line]))
        except ValidationError as e:
            logging.info(f"[Cart] malformed line dropped while restoring cart: {e.message}")
            rejected.append(line)
    products = get_products_by_ids(get_db(), [line['product_id'] for line in lines])
    cart = []
    for line in lines:
        product = products.get(line['product_id'])
        if product is None:
            rejected.append(line['product_id'])
            continue
        try:
            cart = cart_ops.add_item(
                cart, product, line['quantity'], line.get('sale_type', 'unit'), line.get('selected_options'),
            )
        except CartError as e:
            logging.info(f"[Cart] line for product {product['id']} dropped while restoring cart: {e}")
            rejected.append(product['id'])
    _save_cart(cart)
    notice = 'Your cart was updated to match current availability.' if rejected else None
    return _cart_response(cart, notice)


@main_bp.route('/cart/add', methods=['POST'])
def add_to_cart():
    data = request.get_json(silent=True) or {}
    product = _load_product(data.get('product_id'))
    cart = cart_ops.add_item(
        _cart(), product, data.get('quantity', 1), data.get('sale_type', 'unit'), data.get('selected_options'),
    )
    _save_cart(cart)
    logging.info(f"[Cart] added product {product['id']} x{data.get('quantity', 1)} ({data.get('sale_type', 'unit')})")
    return _cart_response(cart)


@main_bp.route('/cart/update', methods=['POST'])
def update_cart():
    data = request.get_json(silent=True) or {}
    if data.get('product_id') is None:
        raise ValidationError('product_id is required')
    cart = cart_ops.update_quantity(
        _cart(), data['product_id'], data.get('delta', 0), data.get('sale_type', 'unit'), data.get('selected_options'),
    )
    _save_cart(cart)
    return _cart_response(cart)


@main_bp.route('/cart/remove', methods=['POST'])
def remove_from_cart():
    data = request.get_json(silent=True) or {}
    if data.get('product_id') is None:
        raise ValidationError('product_id is required')
    cart = cart_ops.remove_item(_cart(), data['product_id'], data.get('sale_type'))
    _save_cart(cart)
    return _cart_response(cart)


@main_bp.route('/cart/clear', methods=['POST'])
def clear_cart():
    _save_cart([])
    return _cart_response([])


def _checkout_items(data):
    items = data.get('items') or _cart()
    if not items:
        raise ValidationError('The cart is empty', details={'fields': {'items': 'The cart is empty'}})
    return items


@main_bp.route('/checkout/quote', methods=['POST'])
def checkout_quote():
    data = request.get_json(silent=True) or {}
    method = data.get('shipping_method')
    if not method:
        raise ValidationError('Choose a shipping method', details={'fields': {'shipping_method': 'Required'}})
    costs = quote_checkout(
        get_db(), _checkout_items(data), method,
        postal_code=data.get('customer_postal_code') or data.get('postal_code'),
        carrier_client=current_app.extensions.get('carrier_client'),
    )
    return jsonify({k: costs[k] for k in ('subtotal', 'shipping_cost', 'total', 'estimated_delivery', 'items')})


@main_bp.route('/orders', methods=['POST'])
def place_order():
    data = request.get_json(silent=True) or {}
    logging.info(f"[Checkout] Incoming /orders | method={data.get('shipping_method')} | email={data.get('customer_email')}")
    db = get_db()
    customer = {field: data.get(field) for field in CUSTOMER_FIELDS}
    method = data.get('shipping_method')
    items = _checkout_items(data)
    validate_checkout(customer, items, method)
    costs = quote_checkout(
        db, items, method,
        postal_code=customer.get('customer_postal_code'),
        carrier_client=current_app.extensions.get('carrier_client'),
    )
    order = create_order(
        db, customer, costs['items'], method, costs,
        notes=data.get('notes'),
        order_number_prefix=current_app.config.get('ORDER_NUMBER_PREFIX', 'ORD'),
    )
    dispatch_outbox(current_app._get_current_object(), order)
    session['order_id'] = str(order['_id'])

    payment = None
    payment_error = None
    try:
        payment = create_payment_preference(order, order['shipping_cost'], order.get('customer_email'), current_app.config)
    except PaymentError as e:
        payment_error = e.message
    if payment is None and payment_error is None:
        # Sandbox: nothing to pay online, the order is complete as placed
        _save_cart([])

    body = serialize_doc({k: v for k, v in order.items() if k != 'outbox'})
    return jsonify({'order': body, 'payment': payment, 'payment_error': payment_error}), 201


def _local_date(value):
    if not value:
        return None
    tz = pytz.timezone(current_app.config.get('TIMEZONE', 'UTC'))
    if value.tzinfo is None:
        value = pytz.utc.localize(value)
    return value.astimezone(tz).strftime('%d/%m/%Y')


def public_tracking(order):
    info = {field: order.get(field) for field in PUBLIC_ORDER_FIELDS}
    info['id'] = str(order['_id'])
    info['status'] = status_info(order.get('status'))
    info['shipping_method_label'] = SHIPPING_METHOD_LABELS.get(order.get('shipping_method'), order.get('shipping_method'))
    info['created_date'] = _local_date(order.get('created_at'))
    info['items'] = [
        {'name': item.get('name'), 'quantity': item.get('quantity'), 'sale_type': item.get('sale_type', 'unit')}
        for item in order.get('items') or []
    ]
    return info


@main_bp.route('/orders/track', methods=['GET'])
def track_order():
    order_number = (request.args.get('order_number') or '').strip()
    order_id = (request.args.get('order_id') or '').strip()
    if not order_number and not order_id:
        raise ValidationError('Enter an order number')
    db = get_db()
    order = get_order_by_number(db, order_number) if order_number else get_order_by_id(db, order_id)
    if order is None:
        raise NotFoundError('No order found with that number')
    logging.info(f"[Tracking] lookup {order.get('order_number')}")
    return jsonify(public_tracking(order))
