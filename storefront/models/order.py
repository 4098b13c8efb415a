import logging
from datetime import datetime
from enum import Enum

from pymongo import DESCENDING, ReturnDocument

from storefront.db import next_sequence, to_object_id
from storefront.errors import NotFoundError, OrderStoreError, ValidationError


class OrderStatus(str, Enum):
    PENDING = 'pending'
    PAYMENT_PENDING = 'payment_pending'
    PAID = 'paid'
    PREPARING = 'preparing'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'
    TO_COORDINATE = 'to_coordinate'


# Values written by older admin views and the payment webhook
LEGACY_STATUS_ALIASES = {
    'processing': OrderStatus.PAID,
    'completed': OrderStatus.DELIVERED,
}

# Position in the normal lifecycle; cancelled/to_coordinate sit outside it
LIFECYCLE_ORDER = [
    OrderStatus.PENDING, OrderStatus.PAYMENT_PENDING, OrderStatus.PAID,
    OrderStatus.PREPARING, OrderStatus.SHIPPED, OrderStatus.DELIVERED,
]

STATUS_INFO = {
    OrderStatus.PENDING: {'label': 'Pendiente', 'description': 'Tu pedido está siendo procesado', 'icon': 'clock'},
    OrderStatus.PAYMENT_PENDING: {'label': 'Esperando Pago', 'description': 'Esperando confirmación del pago', 'icon': 'clock'},
    OrderStatus.PAID: {'label': 'Pagado', 'description': 'Pago confirmado. Preparando tu pedido', 'icon': 'check-circle'},
    OrderStatus.PREPARING: {'label': 'En Preparación', 'description': 'Estamos preparando tu pedido', 'icon': 'package'},
    OrderStatus.SHIPPED: {'label': 'Enviado', 'description': 'Tu pedido está en camino', 'icon': 'truck'},
    OrderStatus.DELIVERED: {'label': 'Entregado', 'description': '¡Tu pedido fue entregado!', 'icon': 'check-circle'},
    OrderStatus.CANCELLED: {'label': 'Cancelado', 'description': 'El pedido fue cancelado', 'icon': 'x-circle'},
    OrderStatus.TO_COORDINATE: {'label': 'A Coordinar', 'description': 'Nos contactaremos para coordinar el envío', 'icon': 'clock'},
}
UNKNOWN_STATUS_INFO = {'label': 'Estado desconocido', 'description': '', 'icon': 'package'}

OUTBOX_EFFECTS = ('deduct_materials', 'notify_webhook', 'send_confirmation_email')


def normalize_status(value):
    """Map any stored or submitted status string onto the canonical enum."""
    if isinstance(value, OrderStatus):
        return value
    text = str(value or '').strip().lower()
    if text in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[text]
    try:
        return OrderStatus(text)
    except ValueError:
        raise ValidationError(f'Unknown order status: {value}', details={'status': value})


def status_info(value):
    try:
        status = normalize_status(value)
    except ValidationError:
        return dict(UNKNOWN_STATUS_INFO, status=value)
    return dict(STATUS_INFO[status], status=status.value)


def payment_status_to_order_status(payment_status):
    return OrderStatus.PAID if payment_status == 'approved' else OrderStatus.PAYMENT_PENDING


def _order_filter(order_id):
    oid = to_object_id(order_id)
    if oid is None:
        raise NotFoundError(f'Order {order_id} not found')
    return {'_id': oid}


def next_order_number(db, prefix='ORD', now=None):
    now = now or datetime.utcnow()
    day = now.strftime('%Y%m%d')
    seq = next_sequence(db, f'order_number:{day}')
    return f'{prefix}-{day}-{seq:04d}'


def new_outbox(now=None):
    now = now or datetime.utcnow()
    return [
        {'effect': effect, 'status': 'pending', 'attempts': 0, 'next_attempt_at': now, 'last_error': None}
        for effect in OUTBOX_EFFECTS
    ]


def insert_order(db, order):
    """Persist a new order; ``order`` already carries status, number and outbox."""
    try:
        result = db.orders.insert_one(order)
    except Exception as e:
        logging.error(f"Order insert failed for {order.get('order_number')}: {e}", exc_info=True)
        raise OrderStoreError('Could not save the order. Please try again.')
    order['_id'] = result.inserted_id
    return order


def get_order_by_id(db, order_id):
    oid = to_object_id(order_id)
    if oid is None:
        return None
    return db.orders.find_one({'_id': oid})


def get_order_by_number(db, order_number):
    return db.orders.find_one({'order_number': str(order_number).strip()})


def list_orders(db, status=None):
    query = {}
    if status:
        canonical = normalize_status(status)
        aliases = [k for k, v in LEGACY_STATUS_ALIASES.items() if v == canonical]
        query['status'] = {'$in': [canonical.value] + aliases}
    return list(db.orders.find(query).sort('created_at', DESCENDING))


def _update(db, order_id, fields):
    fields['updated_at'] = datetime.utcnow()
    order = db.orders.find_one_and_update(
        _order_filter(order_id), {'$set': fields}, return_document=ReturnDocument.AFTER,
    )
    if order is None:
        raise NotFoundError(f'Order {order_id} not found')
    return order


def update_order_status(db, order_id, status):
    new_status = normalize_status(status)
    current = get_order_by_id(db, order_id)
    if current is None:
        raise NotFoundError(f'Order {order_id} not found')
    old_status = status_info(current.get('status'))['status']
    lifecycle = [s.value for s in LIFECYCLE_ORDER]
    if old_status in lifecycle and new_status.value in lifecycle:
        if lifecycle.index(new_status.value) < lifecycle.index(old_status):
            logging.warning(f"Order {order_id} moved backwards: {old_status} -> {new_status.value}")
    logging.info(f"Order {order_id} status -> {new_status.value}")
    return _update(db, order_id, {'status': new_status.value})


def update_order_tracking(db, order_id, tracking_number):
    if not str(tracking_number or '').strip():
        raise ValidationError('Tracking number is required')
    logging.info(f"Order {order_id} tracking -> {tracking_number}")
    return _update(db, order_id, {'tracking_number': str(tracking_number).strip(), 'status': OrderStatus.SHIPPED.value})


def update_order_payment(db, order_id, payment_id, payment_status):
    status = payment_status_to_order_status(payment_status)
    logging.info(f"Order {order_id} payment {payment_id} status={payment_status} -> {status.value}")
    return _update(db, order_id, {
        'payment_id': payment_id,
        'payment_status': payment_status,
        'status': status.value,
    })


def recompute_totals(items, shipping_cost):
    subtotal = round(sum(float(i['price']) * int(i['quantity']) for i in items), 2)
    return {'subtotal': subtotal, 'total': round(subtotal + float(shipping_cost or 0), 2)}


def update_order_details(db, order_id, items=None, customer=None):
    """Admin corrections: replace items and/or customer fields, recomputing totals."""
    order = get_order_by_id(db, order_id)
    if order is None:
        raise NotFoundError(f'Order {order_id} not found')
    fields = {}
    if customer:
        for key, value in customer.items():
            if not key.startswith('customer_'):
                raise ValidationError(f'Unexpected customer field: {key}')
            fields[key] = value
    if items is not None:
        if not items:
            raise ValidationError('An order needs at least one item')
        for item in items:
            if int(item.get('quantity') or 0) < 1 or float(item.get('price') or 0) < 0:
                raise ValidationError('Items need quantity >= 1 and a non-negative price', details={'item': item})
        fields['items'] = items
        fields.update(recompute_totals(items, order.get('shipping_cost')))
        fields['balance_due'] = round(fields['total'] - float(order.get('amount_paid') or 0), 2)
    if not fields:
        raise ValidationError('Nothing to update')
    return _update(db, order_id, fields)


def record_payment(db, order_id, amount, method=None, note=None):
    """Register a partial payment (deposit) and refresh paid/due amounts.

    Paid and due amounts are computed by the server in one pipeline update,
    so concurrent payments on the same order all count.
    """
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        raise ValidationError('Payment amount must be a number')
    if amount <= 0:
        raise ValidationError('Payment amount must be positive')
    now = datetime.utcnow()
    payment = {'amount': amount, 'method': method, 'note': note, 'recorded_at': now}
    updated = db.orders.find_one_and_update(
        _order_filter(order_id),
        [
            {'$set': {
                'payments': {'$concatArrays': [{'$ifNull': ['$payments', []]}, {'$literal': [payment]}]},
                'amount_paid': {'$round': [{'$add': [{'$ifNull': ['$amount_paid', 0]}, amount]}, 2]},
                'updated_at': now,
            }},
            {'$set': {
                'balance_due': {'$round': [{'$subtract': [{'$ifNull': ['$total', 0]}, '$amount_paid']}, 2]},
            }},
        ],
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise NotFoundError(f'Order {order_id} not found')
    logging.info(f"Order {order_id} payment recorded: {amount} (paid={updated.get('amount_paid')})")
    return updated


def set_promised_delivery(db, order_id, delivery_date):
    if delivery_date:
        try:
            datetime.strptime(str(delivery_date), '%Y-%m-%d')
        except ValueError:
            raise ValidationError('Delivery date must be YYYY-MM-DD')
    return _update(db, order_id, {'promised_delivery_date': delivery_date or None})


def delete_order(db, order_id):
    result = db.orders.delete_one(_order_filter(order_id))
    if result.deleted_count == 0:
        raise NotFoundError(f'Order {order_id} not found')
    logging.info(f"Order {order_id} deleted")
