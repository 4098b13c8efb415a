import logging
from datetime import datetime

from pymongo import ReturnDocument

from storefront.db import next_sequence
from storefront.errors import InsufficientStockError, NotFoundError, ValidationError

PRICE_FIELDS = ('price', 'pack_discount', 'wholesale_discount')
PUBLIC_PROJECTION = {'_id': 0}


def normalize_technology(value):
    text = str(value or '').strip().lower()
    return 'Laser' if text in ('laser', 'láser') else '3D'


def validate_product(product):
    """Check authoring invariants; raise ValidationError listing every problem."""
    errors = {}
    if not str(product.get('name') or '').strip():
        errors['name'] = 'Name is required'
    for field in PRICE_FIELDS:
        value = product.get(field)
        if value is None:
            continue
        try:
            if float(value) < 0:
                errors[field] = 'Must be non-negative'
        except (TypeError, ValueError):
            errors[field] = 'Must be a number'
    if product.get('price') is None:
        errors['price'] = 'Price is required'
    stock = product.get('stock')
    if stock is not None and (not isinstance(stock, int) or stock < 0):
        errors['stock'] = 'Stock must be a non-negative integer or empty for unlimited'
    primaries = [img for img in product.get('images') or [] if img.get('primary')]
    if len(primaries) > 1:
        errors['images'] = 'At most one primary image is allowed'
    recipe = product.get('recipe') or {}
    shares = recipe.get('color_percentage') or []
    try:
        total_share = sum(float(entry.get('percentage') or 0) for entry in shares)
    except (TypeError, ValueError):
        errors['recipe'] = 'Colour percentages must be numbers'
    else:
        if total_share > 100:
            errors['recipe'] = f'Colour percentages add up to {total_share:g}%, more than 100%'
    for entry in recipe.get('consumables') or []:
        if not (entry.get('material') or entry.get('material_id')):
            errors['recipe'] = 'Every consumable needs a material'
    if errors:
        raise ValidationError('Invalid product', details={'fields': errors})


def get_all_products(db):
    return list(db.products.find({}, PUBLIC_PROJECTION).sort('id', 1))


def get_product(db, product_id):
    return db.products.find_one({'id': int(product_id)}, PUBLIC_PROJECTION)


def get_products_by_ids(db, product_ids):
    ids = sorted({int(pid) for pid in product_ids})
    return {p['id']: p for p in db.products.find({'id': {'$in': ids}}, PUBLIC_PROJECTION)}


def upsert_product(db, product):
    """Insert or replace a product by its numeric id; new products get the next id."""
    product = dict(product)
    product.pop('_id', None)
    validate_product(product)
    product['technology'] = normalize_technology(product.get('technology'))
    if product.get('id') is None:
        product['id'] = next_sequence(db, 'product_id')
    product['id'] = int(product['id'])
    product['updated_at'] = datetime.utcnow()
    primary = next((img for img in product.get('images') or [] if img.get('primary')), None)
    if primary and not product.get('image'):
        product['image'] = primary.get('url')
    db.products.replace_one({'id': product['id']}, product, upsert=True)
    logging.info(f"Product {product['id']} saved: {product.get('name')}")
    return product


def delete_product(db, product_id):
    result = db.products.delete_one({'id': int(product_id)})
    if result.deleted_count == 0:
        raise NotFoundError(f'Product {product_id} not found')
    logging.info(f"Product {product_id} deleted")


def release_stock(db, reservations):
    for product_id, quantity in reservations:
        try:
            db.products.update_one({'id': product_id}, {'$inc': {'stock': quantity}})
        except Exception as e:
            logging.error(f"Failed to release {quantity} units of product {product_id}: {e}")


def reserve_stock(db, items):
    """Atomically take stock for each order line.

    Products without a stock count are unlimited. If any line cannot be
    covered, units taken so far are put back and InsufficientStockError is raised.
    """
    needed = {}
    for item in items:
        pid = int(item['product_id'])
        needed[pid] = needed.get(pid, 0) + int(item['quantity'])

    reservations = []
    for product_id, quantity in needed.items():
        updated = db.products.find_one_and_update(
            {'id': product_id, 'stock': {'$gte': quantity}},
            {'$inc': {'stock': -quantity}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None:
            reservations.append((product_id, quantity))
            continue
        current = db.products.find_one({'id': product_id}, {'_id': 0, 'name': 1, 'stock': 1})
        if current is not None and current.get('stock') is None:
            continue
        release_stock(db, reservations)
        if current is None:
            raise ValidationError(f'Product {product_id} does not exist', details={'product_id': product_id})
        available = current.get('stock')
        raise InsufficientStockError(
            f"Only {available} units of {current.get('name')} are available",
            details={'product_id': product_id, 'available': available, 'requested': quantity},
        )
    return reservations
