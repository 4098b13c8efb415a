import logging

import stripe

from storefront.errors import PaymentError


def _to_minor_units(amount):
    return int(round(float(amount) * 100))


def build_line_items(order, shipping_cost, currency):
    line_items = []
    for item in order.get('items') or []:
        line_items.append({
            'price_data': {
                'currency': currency,
                'product_data': {'name': item.get('name') or f"Product {item.get('product_id')}"},
                'unit_amount': _to_minor_units(item['price']),
            },
            'quantity': int(item['quantity']),
        })
    if shipping_cost and float(shipping_cost) > 0:
        line_items.append({
            'price_data': {
                'currency': currency,
                'product_data': {'name': 'Envío'},
                'unit_amount': _to_minor_units(shipping_cost),
            },
            'quantity': 1,
        })
    return line_items


def create_payment_preference(order, shipping_cost, payer_email, config):
    """Create a hosted checkout session for ``order``.

    Returns ``{'preference_id', 'redirect_url'}``, or None in sandbox mode
    (no STRIPE_SECRET_KEY), where the order simply stays ``pending``.
    """
    secret_key = config.get('STRIPE_SECRET_KEY')
    if not secret_key:
        logging.warning(f"[Payments] STRIPE_SECRET_KEY not set, order {order.get('order_number')} stays pending")
        return None
    stripe.api_key = secret_key
    base_url = config.get('BASE_URL', 'http://localhost:5000').rstrip('/')
    order_id = str(order['_id'])
    try:
        checkout_session = stripe.checkout.Session.create(
            payment_method_types=['card'],
            line_items=build_line_items(order, shipping_cost, config.get('PAYMENT_CURRENCY', 'ars')),
            mode='payment',
            customer_email=payer_email or None,
            success_url=f"{base_url}/payments/return?order_id={order_id}&session_id={{CHECKOUT_SESSION_ID}}&status=approved",
            cancel_url=f"{base_url}/payments/failure?order_id={order_id}",
            metadata={'order_id': order_id, 'order_number': order.get('order_number')},
        )
    except stripe.StripeError as e:
        logging.error(f"[Payments] Checkout session failed for order {order.get('order_number')}: {e}", exc_info=True)
        raise PaymentError('Could not start the payment. Please try again.')
    logging.info(f"[Payments] Checkout session created | session_id={checkout_session.id} | order={order.get('order_number')}")
    return {'preference_id': checkout_session.id, 'redirect_url': checkout_session.url}
