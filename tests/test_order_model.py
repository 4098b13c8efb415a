"""
test_order_model.py
Tests order status normalization and the order store functions in storefront/models/order.py.
"""
from datetime import datetime
from unittest.mock import MagicMock

import pytest
from bson import ObjectId

from storefront.errors import NotFoundError, ValidationError
from storefront.models import order as orders
from storefront.models.order import OrderStatus

ORDER_ID = ObjectId()


def test_legacy_statuses_normalize():
    assert orders.normalize_status('processing') is OrderStatus.PAID
    assert orders.normalize_status('completed') is OrderStatus.DELIVERED
    assert orders.normalize_status(' Shipped ') is OrderStatus.SHIPPED


def test_unknown_status_is_rejected():
    with pytest.raises(ValidationError):
        orders.normalize_status('lost')


def test_status_info_labels():
    info = orders.status_info('completed')
    assert info['status'] == 'delivered'
    assert info['label'] == 'Entregado'
    assert orders.status_info('lost')['label'] == 'Estado desconocido'


def test_every_status_has_a_label():
    for status in OrderStatus:
        assert orders.status_info(status)['label']


def test_payment_status_mapping():
    assert orders.payment_status_to_order_status('approved') is OrderStatus.PAID
    assert orders.payment_status_to_order_status('in_process') is OrderStatus.PAYMENT_PENDING
    assert orders.payment_status_to_order_status(None) is OrderStatus.PAYMENT_PENDING


def test_order_number_uses_daily_counter():
    db = MagicMock()
    db.counters.find_one_and_update.return_value = {'seq': 7}
    number = orders.next_order_number(db, '3D2', now=datetime(2025, 11, 30, 15, 0))
    assert number == '3D2-20251130-0007'
    assert db.counters.find_one_and_update.call_args[0][0] == {'_id': 'order_number:20251130'}


def test_new_outbox_entries():
    now = datetime(2025, 11, 30)
    outbox = orders.new_outbox(now)
    assert [entry['effect'] for entry in outbox] == list(orders.OUTBOX_EFFECTS)
    assert all(entry['status'] == 'pending' and entry['attempts'] == 0 for entry in outbox)
    assert all(entry['next_attempt_at'] == now for entry in outbox)


def test_list_orders_filter_includes_legacy_values():
    db = MagicMock()
    db.orders.find.return_value.sort.return_value = []
    orders.list_orders(db, 'paid')
    assert db.orders.find.call_args[0][0] == {'status': {'$in': ['paid', 'processing']}}


def test_update_status_allows_backward_moves():
    db = MagicMock()
    db.orders.find_one.return_value = {'_id': ORDER_ID, 'status': 'shipped'}
    db.orders.find_one_and_update.return_value = {'_id': ORDER_ID, 'status': 'preparing'}
    updated = orders.update_order_status(db, str(ORDER_ID), 'preparing')
    assert updated['status'] == 'preparing'
    update = db.orders.find_one_and_update.call_args[0][1]
    assert update['$set']['status'] == 'preparing'
    assert 'updated_at' in update['$set']


def test_update_status_unknown_order():
    db = MagicMock()
    db.orders.find_one.return_value = None
    with pytest.raises(NotFoundError):
        orders.update_order_status(db, str(ORDER_ID), 'paid')


def test_update_status_bad_id():
    with pytest.raises(NotFoundError):
        orders.update_order_status(MagicMock(), 'not-an-id', 'paid')


def test_tracking_marks_shipped():
    db = MagicMock()
    db.orders.find_one_and_update.return_value = {'_id': ORDER_ID}
    orders.update_order_tracking(db, str(ORDER_ID), ' AR123 ')
    fields = db.orders.find_one_and_update.call_args[0][1]['$set']
    assert fields['tracking_number'] == 'AR123'
    assert fields['status'] == 'shipped'


def test_tracking_number_required():
    with pytest.raises(ValidationError):
        orders.update_order_tracking(MagicMock(), str(ORDER_ID), '')


def test_update_payment():
    db = MagicMock()
    db.orders.find_one_and_update.return_value = {'_id': ORDER_ID}
    orders.update_order_payment(db, str(ORDER_ID), 'pay_1', 'approved')
    fields = db.orders.find_one_and_update.call_args[0][1]['$set']
    assert fields['status'] == 'paid'
    assert fields['payment_id'] == 'pay_1'


def test_record_payment_updates_balance():
    db = MagicMock()
    db.orders.find_one_and_update.return_value = {'_id': ORDER_ID, 'amount_paid': 5000, 'balance_due': 5000}
    orders.record_payment(db, str(ORDER_ID), 3000, method='transferencia')
    db.orders.find_one.assert_not_called()
    pipeline = db.orders.find_one_and_update.call_args[0][1]
    assert isinstance(pipeline, list)
    added = pipeline[0]['$set']
    assert added['payments']['$concatArrays'][1]['$literal'][0]['amount'] == 3000
    assert added['amount_paid'] == {'$round': [{'$add': [{'$ifNull': ['$amount_paid', 0]}, 3000.0]}, 2]}
    balance = pipeline[1]['$set']['balance_due']
    assert balance == {'$round': [{'$subtract': [{'$ifNull': ['$total', 0]}, '$amount_paid']}, 2]}


def test_record_payment_unknown_order():
    db = MagicMock()
    db.orders.find_one_and_update.return_value = None
    with pytest.raises(NotFoundError):
        orders.record_payment(db, str(ORDER_ID), 500)


def test_record_payment_rejects_non_positive():
    with pytest.raises(ValidationError):
        orders.record_payment(MagicMock(), str(ORDER_ID), 0)


def test_update_details_recomputes_totals():
    db = MagicMock()
    db.orders.find_one.return_value = {'_id': ORDER_ID, 'shipping_cost': 2000, 'amount_paid': 1000}
    db.orders.find_one_and_update.return_value = {'_id': ORDER_ID}
    items = [{'product_id': 1, 'name': 'Maceta', 'price': 15, 'quantity': 4}]
    orders.update_order_details(db, str(ORDER_ID), items=items, customer={'customer_phone': '111'})
    fields = db.orders.find_one_and_update.call_args[0][1]['$set']
    assert fields['subtotal'] == 60
    assert fields['total'] == 2060
    assert fields['balance_due'] == 1060
    assert fields['customer_phone'] == '111'


def test_update_details_rejects_foreign_fields():
    db = MagicMock()
    db.orders.find_one.return_value = {'_id': ORDER_ID}
    with pytest.raises(ValidationError):
        orders.update_order_details(db, str(ORDER_ID), customer={'status': 'paid'})


def test_promised_delivery_date_format():
    with pytest.raises(ValidationError):
        orders.set_promised_delivery(MagicMock(), str(ORDER_ID), '30/11/2025')


def test_delete_missing_order():
    db = MagicMock()
    db.orders.delete_one.return_value.deleted_count = 0
    with pytest.raises(NotFoundError):
        orders.delete_order(db, str(ORDER_ID))
