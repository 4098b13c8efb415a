import logging

import stripe
from flask import Blueprint, current_app, jsonify, request, session

from storefront.db import get_db
from storefront.errors import NotFoundError, PaymentError, ValidationError
from storefront.models.order import get_order_by_id, status_info, update_order_payment
from storefront.utils.payments import create_payment_preference

payments_bp = Blueprint('payments', __name__, url_prefix='/payments')

CHECKOUT_RETRY_PATH = '/checkout'


def _load_order(order_id):
    if not order_id:
        raise ValidationError('No active order session')
    order = get_order_by_id(get_db(), order_id)
    if order is None:
        raise NotFoundError(f'Order {order_id} not found')
    return order


@payments_bp.route('/create', methods=['POST'])
def create_preference():
    data = request.get_json(silent=True) or {}
    order = _load_order(data.get('order_id') or session.get('order_id'))
    if float(order.get('total') or 0) <= 0:
        raise ValidationError('Invalid order total')
    preference = create_payment_preference(
        order, order.get('shipping_cost'), order.get('customer_email'), current_app.config,
    )
    if preference is None:
        return jsonify({'sandbox': True, 'order_id': str(order['_id'])}), 200
    return jsonify(preference), 201


def _confirm_payment(order_id, session_id):
    """Return ``(payment_id, payment_status)`` for a customer coming back from checkout.

    With a Stripe key the outcome is read from the Checkout Session, which must
    belong to ``order_id``. Query-string values are only trusted in sandbox mode.
    """
    if not current_app.config.get('STRIPE_SECRET_KEY'):
        return request.args.get('payment_id') or session_id, request.args.get('status')
    if not session_id:
        raise ValidationError('Missing payment information')
    stripe.api_key = current_app.config['STRIPE_SECRET_KEY']
    try:
        checkout_session = stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as e:
        logging.error(f"[Payments] Could not retrieve session {session_id}: {e}")
        raise PaymentError('Could not confirm the payment status. Please contact us.')
    metadata = checkout_session.metadata or {}
    session_order_id = metadata['order_id'] if 'order_id' in metadata else None
    if str(session_order_id) != str(order_id):
        logging.warning(f"[Payments] Session {session_id} belongs to order {session_order_id}, not {order_id}")
        raise ValidationError('This payment does not belong to the order')
    logging.info(f"[Payments] Session retrieved | session_id={session_id} | payment_status={checkout_session.payment_status}")
    status = 'approved' if checkout_session.payment_status == 'paid' else checkout_session.payment_status
    return checkout_session.id, status


@payments_bp.route('/return', methods=['GET'])
def payment_return():
    order_id = request.args.get('order_id')
    if not order_id:
        raise ValidationError('Missing payment information')
    payment_id, payment_status = _confirm_payment(order_id, request.args.get('session_id'))
    logging.info(f"[Payments] Return | order_id={order_id} | payment_id={payment_id} | status={payment_status}")
    if not payment_id:
        raise ValidationError('Missing payment information')
    order = update_order_payment(get_db(), order_id, payment_id, payment_status)
    if payment_status == 'approved':
        session['cart'] = []
        session.modified = True
    return jsonify({
        'order_id': str(order['_id']),
        'order_number': order.get('order_number'),
        'status': status_info(order.get('status')),
    })


@payments_bp.route('/failure', methods=['GET'])
def payment_failure():
    order_id = request.args.get('order_id')
    logging.warning(f"[Payments] Payment failed or cancelled | order_id={order_id}")
    return jsonify({
        'error': 'The payment could not be completed. Your cart was kept so you can try again.',
        'order_id': order_id,
        'retry_path': CHECKOUT_RETRY_PATH,
    }), 402


@payments_bp.route('/webhook', methods=['POST'])
def stripe_webhook():
    payload = request.data
    sig_header = request.headers.get('Stripe-Signature')
    try:
        event = stripe.Webhook.construct_event(payload, sig_header, current_app.config['STRIPE_WEBHOOK_SECRET'])
    except ValueError as e:
        logging.error(f"Invalid webhook payload: {str(e)}")
        return jsonify({'error': 'Invalid payload'}), 400
    except stripe.SignatureVerificationError as e:
        logging.error(f"Webhook signature verification failed: {str(e)}")
        return jsonify({'error': 'Invalid signature'}), 400

    logging.info(f"[Payments] Webhook event received | type={event['type']}")
    if event['type'] == 'checkout.session.completed':
        session_data = event['data']['object']
        order_id = (session_data.get('metadata') or {}).get('order_id')
        update_order_payment(get_db(), order_id, session_data.get('id'), 'approved')
        logging.info(f"Order {order_id} marked as paid via webhook")
    else:
        logging.info(f"Unhandled webhook event: {event['type']}")
    return jsonify({'status': 'success'}), 200
