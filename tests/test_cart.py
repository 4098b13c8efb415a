"""
test_cart.py
Tests the session cart operations in storefront/utils/cart.py, including the stock guard.
"""
import pytest

from storefront.errors import CartError, ValidationError
from storefront.utils import cart as cart_ops

PRODUCT_A = {'id': 1, 'name': 'Maceta', 'price': 15, 'stock': 3, 'technology': '3D'}
PRODUCT_B = {'id': 2, 'name': 'Cartel', 'price': 28.5, 'stock': None, 'technology': 'Laser',
             'pack_enabled': True, 'units_per_pack': 4, 'pack_discount': 10}


def test_add_new_line_snapshots_product():
    cart = cart_ops.add_item([], PRODUCT_A, 2)
    assert len(cart) == 1
    line = cart[0]
    assert line['product_id'] == 1
    assert line['quantity'] == 2
    assert line['price'] == 15
    assert line['sale_type'] == 'unit'
    assert line['name'] == 'Maceta'


def test_add_merges_same_line():
    cart = cart_ops.add_item([], PRODUCT_A, 1)
    cart = cart_ops.add_item(cart, PRODUCT_A, 1)
    assert len(cart) == 1
    assert cart[0]['quantity'] == 2


def test_different_sale_type_or_options_are_separate_lines():
    cart = cart_ops.add_item([], PRODUCT_B, 1)
    cart = cart_ops.add_item(cart, PRODUCT_B, 1, sale_type='pack')
    cart = cart_ops.add_item(cart, PRODUCT_B, 1, options={'color': 'Rojo'})
    assert len(cart) == 3
    pack_line = [line for line in cart if line['sale_type'] == 'pack'][0]
    # 28.5 * 4 * 0.9 = 102.6
    assert pack_line['price'] == 103


def test_stock_guard_rejects_when_cart_holds_all_stock():
    cart = cart_ops.add_item([], PRODUCT_A, 3)
    with pytest.raises(CartError) as exc:
        cart_ops.add_item(cart, PRODUCT_A, 1)
    assert 'Only 3 units' in exc.value.message
    assert cart[0]['quantity'] == 3


def test_out_of_stock_product():
    with pytest.raises(CartError):
        cart_ops.add_item([], dict(PRODUCT_A, stock=0), 1)


def test_disabled_sale_type():
    with pytest.raises(CartError):
        cart_ops.add_item([], PRODUCT_A, 1, sale_type='wholesale')


def test_invalid_quantity():
    with pytest.raises(CartError):
        cart_ops.add_item([], PRODUCT_A, 0)


def test_unlimited_stock():
    cart = cart_ops.add_item([], PRODUCT_B, 500)
    assert cart[0]['quantity'] == 500


def test_update_quantity_has_minimum_of_one():
    cart = cart_ops.add_item([], PRODUCT_A, 2)
    cart = cart_ops.update_quantity(cart, 1, -5)
    assert cart[0]['quantity'] == 1


def test_update_quantity_respects_stock():
    cart = cart_ops.add_item([], PRODUCT_A, 3)
    with pytest.raises(CartError):
        cart_ops.update_quantity(cart, 1, 1)


def test_remove_item():
    cart = cart_ops.add_item([], PRODUCT_A, 1)
    cart = cart_ops.add_item(cart, PRODUCT_B, 1)
    assert [line['product_id'] for line in cart_ops.remove_item(cart, 1)] == [2]


def test_sync_clamps_and_drops():
    cart = cart_ops.add_item([], PRODUCT_A, 3)
    cart = cart_ops.add_item(cart, PRODUCT_B, 1)
    synced, notice = cart_ops.sync_with_catalog(cart, [dict(PRODUCT_A, stock=2)])
    assert len(synced) == 1
    assert synced[0]['quantity'] == 2
    assert synced[0]['stock'] == 2
    assert notice is not None


def test_sync_keeps_one_unit_of_sold_out_product():
    cart = cart_ops.add_item([], PRODUCT_A, 2)
    synced, _ = cart_ops.sync_with_catalog(cart, [dict(PRODUCT_A, stock=0)])
    assert synced[0]['quantity'] == 1


def test_sync_without_changes_has_no_notice():
    cart = cart_ops.add_item([], PRODUCT_A, 1)
    _, notice = cart_ops.sync_with_catalog(cart, [PRODUCT_A])
    assert notice is None


def test_subtotal_and_count():
    cart = cart_ops.add_item([], PRODUCT_A, 2)
    cart = cart_ops.add_item(cart, PRODUCT_B, 1)
    assert cart_ops.cart_subtotal(cart) == 58.5
    assert cart_ops.item_count(cart) == 3


def test_non_numeric_quantity_is_a_validation_error():
    with pytest.raises(ValidationError):
        cart_ops.add_item([], PRODUCT_A, '1.5')
    with pytest.raises(ValidationError):
        cart_ops.update_quantity([], 'abc', 1)
