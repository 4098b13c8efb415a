#cart.py
#Session cart: a list of plain dicts, so it serializes straight into the Flask session.

from storefront.errors import CartError, ValidationError
from storefront.utils.pricing import price_for_sale_type

# Product fields copied into the cart line (used later for package estimates)
SNAPSHOT_FIELDS = ('name', 'image', 'technology', 'dimensions', 'weight', 'stock')


def whole_number(value, field):
    """``value`` as an int; booleans, fractions and non-numbers raise ValidationError for ``field``."""
    try:
        if isinstance(value, bool) or float(value) != int(value):
            raise ValueError(value)
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f'{field} must be a whole number', details={'fields': {field: 'Must be a whole number'}})


def _same_line(item, product_id, sale_type, options):
    return (
        item['product_id'] == product_id
        and item.get('sale_type', 'unit') == sale_type
        and (item.get('selected_options') or {}) == (options or {})
    )


def _cart_quantity(cart, product_id):
    return sum(item['quantity'] for item in cart if item['product_id'] == product_id)


def add_item(cart, product, quantity=1, sale_type='unit', options=None):
    """Return a new cart with ``quantity`` more of ``product``; raise CartError if stock forbids it."""
    quantity = whole_number(quantity, 'quantity')
    if quantity < 1:
        raise CartError('Quantity must be at least 1')
    stock = product.get('stock')
    if stock is not None and stock <= 0:
        raise CartError('This product is out of stock')
    price = price_for_sale_type(product, sale_type)
    if price is None:
        raise CartError(f'Sale type {sale_type} is not available for this product')
    product_id = int(product['id'])
    if stock is not None and _cart_quantity(cart, product_id) + quantity > stock:
        raise CartError(f'Only {stock} units of this product are available', details={'available': stock})

    options = {k: v for k, v in (options or {}).items() if v}
    new_cart = []
    merged = False
    for item in cart:
        if not merged and _same_line(item, product_id, sale_type, options):
            item = dict(item, quantity=item['quantity'] + quantity)
            merged = True
        new_cart.append(item)
    if not merged:
        line = {k: product.get(k) for k in SNAPSHOT_FIELDS}
        line.update({
            'product_id': product_id,
            'price': price,
            'quantity': quantity,
            'sale_type': sale_type,
            'selected_options': options,
        })
        new_cart.append(line)
    return new_cart


def update_quantity(cart, product_id, delta, sale_type='unit', options=None):
    product_id = whole_number(product_id, 'product_id')
    delta = whole_number(delta, 'delta')
    new_cart = []
    for item in cart:
        if _same_line(item, product_id, sale_type, options):
            new_quantity = item['quantity'] + delta
            stock = item.get('stock')
            if stock is not None and delta > 0 and _cart_quantity(cart, item['product_id']) + delta > stock:
                raise CartError(f'Only {stock} units available', details={'available': stock})
            item = dict(item, quantity=max(1, new_quantity))
        new_cart.append(item)
    return new_cart


def remove_item(cart, product_id, sale_type=None):
    product_id = whole_number(product_id, 'product_id')
    return [
        item for item in cart
        if not (item['product_id'] == product_id and (sale_type is None or item.get('sale_type', 'unit') == sale_type))
    ]


def sync_with_catalog(cart, products):
    """Drop lines whose product vanished and clamp quantities to current stock.

    Returns ``(cart, notice)``; ``notice`` is None when nothing changed.
    """
    by_id = {int(p['id']): p for p in products}
    new_cart = []
    changed = False
    for item in cart:
        product = by_id.get(item['product_id'])
        if product is None:
            changed = True
            continue
        stock = product.get('stock')
        max_quantity = max(1, stock) if stock is not None else item['quantity']
        quantity = min(item['quantity'], max_quantity)
        if quantity != item['quantity']:
            changed = True
        new_cart.append(dict(item, quantity=quantity, stock=stock))
    notice = 'Your cart was updated to match current availability.' if changed else None
    return new_cart, notice


def cart_subtotal(cart):
    return round(sum(float(item['price']) * int(item['quantity']) for item in cart), 2)


def item_count(cart):
    return sum(int(item['quantity']) for item in cart)
