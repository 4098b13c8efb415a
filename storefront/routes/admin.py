import logging
from datetime import datetime

from flask import Blueprint, jsonify, request

from storefront.db import get_db, serialize_doc
from storefront.errors import NotFoundError, ValidationError
from storefront.models import expense as expenses
from storefront.models import material as materials
from storefront.models import order as orders
from storefront.models import product as products
from storefront.models import shipping_config
from storefront.routes.auth import admin_required

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


def _json():
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError('Expected a JSON body')
    return data


def _order_view(order):
    view = serialize_doc(order)
    view['status_info'] = orders.status_info(order.get('status'))
    return view


# --- Products ---

@admin_bp.route('/products', methods=['GET'])
@admin_required
def list_products():
    return jsonify(products.get_all_products(get_db()))


@admin_bp.route('/products', methods=['POST'])
@admin_required
def create_product():
    product = products.upsert_product(get_db(), _json())
    return jsonify(serialize_doc(product)), 201


@admin_bp.route('/products/<int:product_id>', methods=['PUT'])
@admin_required
def update_product(product_id):
    data = dict(_json(), id=product_id)
    return jsonify(serialize_doc(products.upsert_product(get_db(), data)))


@admin_bp.route('/products/<int:product_id>', methods=['DELETE'])
@admin_required
def delete_product(product_id):
    products.delete_product(get_db(), product_id)
    return jsonify({'message': 'Product deleted'})


# --- Orders ---

@admin_bp.route('/orders', methods=['GET'])
@admin_required
def list_orders():
    return jsonify([_order_view(o) for o in orders.list_orders(get_db(), request.args.get('status'))])


@admin_bp.route('/orders/<order_id>', methods=['GET'])
@admin_required
def get_order(order_id):
    order = orders.get_order_by_id(get_db(), order_id)
    if order is None:
        raise NotFoundError(f'Order {order_id} not found')
    return jsonify(_order_view(order))


@admin_bp.route('/orders/<order_id>/status', methods=['POST'])
@admin_required
def update_status(order_id):
    order = orders.update_order_status(get_db(), order_id, _json().get('status'))
    return jsonify(_order_view(order))


@admin_bp.route('/orders/<order_id>/tracking', methods=['POST'])
@admin_required
def update_tracking(order_id):
    order = orders.update_order_tracking(get_db(), order_id, _json().get('tracking_number'))
    return jsonify(_order_view(order))


@admin_bp.route('/orders/<order_id>/payment', methods=['POST'])
@admin_required
def update_payment(order_id):
    data = _json()
    order = orders.update_order_payment(get_db(), order_id, data.get('payment_id'), data.get('payment_status'))
    return jsonify(_order_view(order))


@admin_bp.route('/orders/<order_id>', methods=['PATCH'])
@admin_required
def edit_order(order_id):
    data = _json()
    customer = {k: v for k, v in data.items() if k.startswith('customer_')}
    order = orders.update_order_details(get_db(), order_id, items=data.get('items'), customer=customer or None)
    return jsonify(_order_view(order))


@admin_bp.route('/orders/<order_id>/payments', methods=['POST'])
@admin_required
def add_payment(order_id):
    data = _json()
    order = orders.record_payment(get_db(), order_id, data.get('amount'), data.get('method'), data.get('note'))
    return jsonify(_order_view(order)), 201


@admin_bp.route('/orders/<order_id>/delivery', methods=['POST'])
@admin_required
def set_delivery(order_id):
    order = orders.set_promised_delivery(get_db(), order_id, _json().get('promised_delivery_date'))
    return jsonify(_order_view(order))


@admin_bp.route('/orders/<order_id>', methods=['DELETE'])
@admin_required
def delete_order(order_id):
    orders.delete_order(get_db(), order_id)
    return jsonify({'message': 'Order deleted'})


# --- Raw materials ---

@admin_bp.route('/materials', methods=['GET'])
@admin_required
def list_materials():
    db = get_db()
    rows = materials.list_low_stock(db) if request.args.get('low_stock') else materials.list_materials(db)
    return jsonify([serialize_doc(m) for m in rows])


@admin_bp.route('/materials', methods=['POST'])
@admin_required
def create_material():
    data = _json()
    material = materials.create_material(
        get_db(), data.get('name'), data.get('category'),
        quantity=data.get('quantity', 0), unit=data.get('unit', 'unidades'),
        min_threshold=data.get('min_threshold', 0),
    )
    return jsonify(serialize_doc(material)), 201


@admin_bp.route('/materials/<material_id>', methods=['PATCH'])
@admin_required
def adjust_material(material_id):
    data = dict(_json())
    quantity = data.pop('quantity', None)
    delta = data.pop('delta', None)
    material = materials.adjust_material(get_db(), material_id, quantity=quantity, delta=delta, **data)
    return jsonify(serialize_doc(material))


@admin_bp.route('/materials/<material_id>', methods=['DELETE'])
@admin_required
def delete_material(material_id):
    materials.delete_material(get_db(), material_id)
    return jsonify({'message': 'Material deleted'})


# --- Shipping configuration ---

@admin_bp.route('/shipping/config', methods=['GET'])
@admin_required
def get_shipping_config():
    return jsonify(serialize_doc(shipping_config.get_shipping_config(get_db())))


@admin_bp.route('/shipping/config', methods=['PUT'])
@admin_required
def update_shipping_config():
    config = shipping_config.update_shipping_config(get_db(), _json())
    return jsonify(serialize_doc(config))


@admin_bp.route('/shipping/zones', methods=['GET'])
@admin_required
def list_zones():
    return jsonify([serialize_doc(z) for z in shipping_config.list_zones(get_db())])


@admin_bp.route('/shipping/zones', methods=['POST'])
@admin_required
def create_zone():
    return jsonify(serialize_doc(shipping_config.upsert_zone(get_db(), _json()))), 201


@admin_bp.route('/shipping/zones/<zone_id>', methods=['PUT'])
@admin_required
def update_zone(zone_id):
    return jsonify(serialize_doc(shipping_config.upsert_zone(get_db(), _json(), zone_id=zone_id)))


@admin_bp.route('/shipping/zones/<zone_id>', methods=['DELETE'])
@admin_required
def delete_zone(zone_id):
    shipping_config.delete_zone(get_db(), zone_id)
    return jsonify({'message': 'Zone deleted'})


# --- Expenses ---

def _year_month():
    today = datetime.utcnow()
    return expenses.check_period(request.args.get('year', today.year), request.args.get('month', today.month))


@admin_bp.route('/expenses/categories', methods=['GET'])
@admin_required
def expense_categories():
    return jsonify(expenses.EXPENSE_CATEGORIES)


@admin_bp.route('/expenses', methods=['GET'])
@admin_required
def list_expenses():
    year, month = _year_month()
    return jsonify([serialize_doc(e) for e in expenses.list_expenses(get_db(), year, month)])


@admin_bp.route('/expenses', methods=['POST'])
@admin_required
def add_expense():
    data = _json()
    expense = expenses.add_expense(
        get_db(), data.get('date'), data.get('amount'), data.get('category'),
        subcategory=data.get('subcategory'), description=data.get('description', ''),
    )
    return jsonify(serialize_doc(expense)), 201


@admin_bp.route('/expenses/<expense_id>', methods=['DELETE'])
@admin_required
def delete_expense(expense_id):
    expenses.delete_expense(get_db(), expense_id)
    return jsonify({'message': 'Expense deleted'})


@admin_bp.route('/finance/summary', methods=['GET'])
@admin_required
def finance_summary():
    year, month = _year_month()
    summary = expenses.monthly_summary(get_db(), year, month)
    logging.info(f"[Admin] finance summary {year}-{month:02d}: {summary}")
    return jsonify(summary)
