import logging
from datetime import datetime

from pymongo import ReturnDocument

from storefront.db import to_object_id
from storefront.errors import NotFoundError, ValidationError

FILAMENT_CATEGORY = 'Filamento'
# Stock units that hold filament by the kilogram (a spool counts as 1 kg)
KG_UNITS = ('kg', 'kilo', 'kilos', 'rollo', 'rollos', 'roll', 'rolls', 'bobina', 'bobinas', 'spool', 'spools')


def is_kg_unit(unit):
    return str(unit or '').strip().lower() in KG_UNITS


def with_low_stock_flag(material):
    material = dict(material)
    threshold = material.get('min_threshold')
    material['low_stock'] = threshold is not None and float(material.get('quantity') or 0) < float(threshold)
    return material


def list_materials(db):
    return [with_low_stock_flag(m) for m in db.raw_materials.find({}).sort([('category', 1), ('name', 1)])]


def list_low_stock(db):
    return [m for m in list_materials(db) if m['low_stock']]


def _validated_quantity(value, field):
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a number')
    if value < 0:
        raise ValidationError(f'{field} must be non-negative')
    return value


def create_material(db, name, category, quantity=0, unit='unidades', min_threshold=0):
    if not str(name or '').strip():
        raise ValidationError('Material name is required')
    material = {
        'name': str(name).strip(),
        'category': str(category or '').strip(),
        'quantity': _validated_quantity(quantity, 'quantity'),
        'unit': unit,
        'min_threshold': _validated_quantity(min_threshold, 'min_threshold'),
        'created_at': datetime.utcnow(),
        'updated_at': datetime.utcnow(),
    }
    material['_id'] = db.raw_materials.insert_one(material).inserted_id
    logging.info(f"Raw material created: {material['name']} ({material['category']})")
    return with_low_stock_flag(material)


def adjust_material(db, material_id, quantity=None, delta=None, **fields):
    """Admin adjustment: set an absolute quantity or apply a delta (floored at 0)."""
    oid = to_object_id(material_id)
    if oid is None:
        raise NotFoundError(f'Material {material_id} not found')
    allowed = {k: v for k, v in fields.items() if k in ('name', 'category', 'unit', 'min_threshold')}
    if 'min_threshold' in allowed:
        allowed['min_threshold'] = _validated_quantity(allowed['min_threshold'], 'min_threshold')
    allowed['updated_at'] = datetime.utcnow()
    if quantity is not None:
        allowed['quantity'] = round(_validated_quantity(quantity, 'quantity'), 3)
        update = {'$set': allowed}
    elif delta is not None:
        update = [{'$set': dict(allowed, quantity=_floored_subtraction(-float(delta)))}]
    else:
        update = {'$set': allowed}
    material = db.raw_materials.find_one_and_update({'_id': oid}, update, return_document=ReturnDocument.AFTER)
    if material is None:
        raise NotFoundError(f'Material {material_id} not found')
    logging.info(f"Raw material {material.get('name')} adjusted -> {material.get('quantity')} {material.get('unit')}")
    return with_low_stock_flag(material)


def delete_material(db, material_id):
    oid = to_object_id(material_id)
    result = db.raw_materials.delete_one({'_id': oid}) if oid else None
    if result is None or result.deleted_count == 0:
        raise NotFoundError(f'Material {material_id} not found')


def _floored_subtraction(amount):
    # quantity = round(max(0, quantity - amount), 3), evaluated server-side
    return {'$round': [{'$max': [0, {'$subtract': ['$quantity', amount]}]}, 3]}


def decrement_material(db, material_id, amount):
    """Atomically subtract ``amount`` from one material, never going below zero."""
    return db.raw_materials.find_one_and_update(
        {'_id': material_id},
        [{'$set': {'quantity': _floored_subtraction(float(amount)), 'updated_at': datetime.utcnow()}}],
        return_document=ReturnDocument.AFTER,
    )
