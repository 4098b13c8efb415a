import logging
from datetime import datetime

from pymongo import ASCENDING

from storefront.db import to_object_id
from storefront.errors import NotFoundError, ValidationError
from storefront.utils.shipping import DEFAULT_SHIPPING_CONFIG, postal_code_number

CONFIG_ID = 'default'
NUMERIC_FIELDS = ('moto_free_threshold', 'moto_base_fee', 'correo_free_threshold', 'carrier_fallback_fee')


def get_shipping_config(db):
    doc = db.shipping_config.find_one({'_id': CONFIG_ID}) or {}
    config = dict(DEFAULT_SHIPPING_CONFIG)
    config.update({k: v for k, v in doc.items() if k != '_id'})
    return config


def update_shipping_config(db, updates):
    fields = {}
    for key, value in (updates or {}).items():
        if key not in DEFAULT_SHIPPING_CONFIG:
            raise ValidationError(f'Unknown shipping setting: {key}')
        if key in NUMERIC_FIELDS and value is not None:
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise ValidationError(f'{key} must be a number')
            if value < 0:
                raise ValidationError(f'{key} must be non-negative')
        fields[key] = value
    fields['updated_at'] = datetime.utcnow()
    db.shipping_config.update_one({'_id': CONFIG_ID}, {'$set': fields}, upsert=True)
    logging.info(f"Shipping config updated: {fields}")
    return get_shipping_config(db)


def list_zones(db, active_only=False):
    query = {'active': {'$ne': False}} if active_only else {}
    return list(db.shipping_zones.find(query).sort([('sort_order', ASCENDING), ('postal_code_from', ASCENDING)]))


def upsert_zone(db, zone, zone_id=None):
    zone = {k: v for k, v in dict(zone).items() if k not in ('_id', 'id')}
    low = postal_code_number(zone.get('postal_code_from'))
    high = postal_code_number(zone.get('postal_code_to'))
    if not zone.get('name'):
        raise ValidationError('Zone name is required')
    if low is None or high is None or low > high:
        raise ValidationError('Zone needs a valid postal code range (from <= to)')
    try:
        zone['price'] = float(zone.get('price'))
    except (TypeError, ValueError):
        raise ValidationError('Zone price must be a number')
    if zone['price'] < 0:
        raise ValidationError('Zone price must be non-negative')
    zone.setdefault('active', True)
    zone['updated_at'] = datetime.utcnow()
    if zone_id is None:
        zone['_id'] = db.shipping_zones.insert_one(zone).inserted_id
        return zone
    oid = to_object_id(zone_id)
    result = db.shipping_zones.update_one({'_id': oid}, {'$set': zone}) if oid else None
    if result is None or result.matched_count == 0:
        raise NotFoundError(f'Zone {zone_id} not found')
    zone['_id'] = oid
    return zone


def delete_zone(db, zone_id):
    oid = to_object_id(zone_id)
    result = db.shipping_zones.delete_one({'_id': oid}) if oid else None
    if result is None or result.deleted_count == 0:
        raise NotFoundError(f'Zone {zone_id} not found')
