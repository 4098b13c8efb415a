#deduction.py
#Raw-material deduction from product recipes when an order is created.
#Best-effort bookkeeping: unresolved materials and failed updates are logged, never raised.

import logging

from storefront.models.material import FILAMENT_CATEGORY, decrement_material, is_kg_unit
from storefront.models.product import get_products_by_ids

# A recipe colour above this share is replaced by the customer's chosen colour
DOMINANT_COLOR_SHARE = 40


def resolve_material(materials, name=None, category=None, material_id=None):
    """Find the inventory row for a recipe entry.

    Order: explicit id, exact case-insensitive name, then substring match.
    ``category`` narrows the name matches when given.
    """
    if material_id is not None:
        for material in materials:
            if str(material.get('_id')) == str(material_id):
                return material
        logging.warning(f"[Deduction] material_id {material_id} not in inventory, falling back to name '{name}'")
    if not name:
        return None
    needle = str(name).strip().lower()
    candidates = materials
    if category:
        candidates = [m for m in materials if str(m.get('category') or '').strip().lower() == category.strip().lower()]
    for material in candidates:
        if str(material.get('name') or '').strip().lower() == needle:
            return material
    for material in candidates:
        if needle in str(material.get('name') or '').strip().lower():
            return material
    return None


def _selected_color(item):
    options = item.get('selected_options') or {}
    color = options.get('color')
    return str(color).strip() if color else None


def plan_material_deductions(items, products, materials):
    """Total decrement per material id for the order lines, in each material's own unit."""
    pending = {}

    def add(material, amount):
        key = material['_id']
        pending[key] = pending.get(key, 0) + amount

    for item in items:
        product = products.get(int(item['product_id']))
        recipe = (product or {}).get('recipe')
        if not recipe:
            continue
        quantity = int(item.get('quantity') or 1)

        for consumable in recipe.get('consumables') or []:
            material = resolve_material(
                materials,
                name=consumable.get('material'),
                category=consumable.get('category'),
                material_id=consumable.get('material_id'),
            )
            if material is None:
                logging.warning(f"[Deduction] consumable '{consumable.get('material')}' of product {product['id']} not found, skipped")
                continue
            add(material, float(consumable.get('quantity') or 0) * quantity)

        weight = float(product.get('weight') or 0)
        shares = recipe.get('color_percentage') or []
        if weight <= 0 or not shares:
            continue
        total_weight = weight * quantity
        chosen = _selected_color(item)
        for share in shares:
            percentage = float(share.get('percentage') or 0)
            grams = total_weight * percentage / 100
            color = share.get('color')
            material_id = share.get('material_id')
            if chosen and percentage > DOMINANT_COLOR_SHARE:
                color, material_id = chosen, None
            material = resolve_material(materials, name=color, category=FILAMENT_CATEGORY, material_id=material_id)
            if material is None:
                logging.warning(f"[Deduction] filament '{color}' for product {product['id']} not found, skipped")
                continue
            add(material, grams / 1000 if is_kg_unit(material.get('unit')) else grams)

    return pending


def apply_material_deductions(db, pending, materials_by_id=None):
    """Apply each decrement independently; returns the new quantities that were written."""
    applied = {}
    for material_id, amount in pending.items():
        if amount <= 0:
            continue
        name = (materials_by_id or {}).get(material_id, {}).get('name', material_id)
        try:
            updated = decrement_material(db, material_id, amount)
        except Exception as e:
            logging.error(f"[Deduction] failed to deduct {amount} from {name}: {e}")
            continue
        if updated is None:
            logging.warning(f"[Deduction] material {name} disappeared before deduction")
            continue
        applied[material_id] = updated.get('quantity')
        logging.info(f"[Deduction] {name}: -{round(amount, 3)} -> {updated.get('quantity')} {updated.get('unit', '')}")
    return applied


def deduct_materials_for_order(db, order):
    """Deduct the raw materials consumed by every line of ``order``."""
    items = order.get('items') or []
    if not items:
        return {}
    try:
        products = get_products_by_ids(db, [item['product_id'] for item in items])
        materials = list(db.raw_materials.find({}))
    except Exception as e:
        logging.error(f"[Deduction] could not load recipes/materials for order {order.get('order_number')}: {e}")
        return {}
    pending = plan_material_deductions(items, products, materials)
    logging.info(f"[Deduction] order {order.get('order_number')}: {len(pending)} materials to update")
    return apply_material_deductions(db, pending, {m['_id']: m for m in materials})
