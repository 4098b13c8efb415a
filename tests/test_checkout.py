import unittest
from unittest.mock import MagicMock

from bson import ObjectId

from storefront.errors import (
    CarrierQuoteError, InsufficientStockError, OrderStoreError, ValidationError,
)
from storefront.utils.checkout import create_order, normalize_items, quote_checkout, validate_checkout

PRODUCT_A = {'id': 1, 'name': 'Maceta', 'price': 15, 'stock': 10, 'technology': '3D', 'weight': 80}
PRODUCT_B = {'id': 2, 'name': 'Cartel', 'price': 28.5, 'stock': None, 'technology': 'Laser'}
ZONE1 = {'name': 'Zone1', 'postal_code_from': '1800', 'postal_code_to': '1899', 'price': 2.0, 'active': True}

CUSTOMER = {
    'customer_name': 'Ana Pérez',
    'customer_email': 'ana@example.com',
    'customer_phone': '1155550000',
    'customer_province': 'Buenos Aires',
    'customer_address': 'Calle 123',
    'customer_city': 'Adrogué',
    'customer_postal_code': '1846',
}
CART = [{'product_id': 1, 'quantity': 2}, {'product_id': 2, 'quantity': 1}]


def make_db():
    db = MagicMock()
    db.products.find.return_value = [PRODUCT_A, PRODUCT_B]
    db.shipping_config.find_one.return_value = None
    db.shipping_zones.find.return_value.sort.return_value = [ZONE1]
    db.products.find_one_and_update.return_value = {'id': 1, 'stock': 8}
    db.counters.find_one_and_update.return_value = {'_id': 'order_number', 'seq': 1}
    db.orders.insert_one.return_value.inserted_id = ObjectId()
    return db


class ValidateCheckoutTestCase(unittest.TestCase):
    def test_valid_customer_passes(self):
        validate_checkout(CUSTOMER, CART, 'moto')

    def test_missing_fields_are_reported_together(self):
        with self.assertRaises(ValidationError) as ctx:
            validate_checkout({'customer_name': 'Ana'}, [], None)
        fields = ctx.exception.details['fields']
        for key in ('customer_email', 'customer_phone', 'customer_province', 'items', 'shipping_method'):
            self.assertIn(key, fields)

    def test_address_required_for_delivery_methods(self):
        customer = dict(CUSTOMER, customer_address='')
        with self.assertRaises(ValidationError) as ctx:
            validate_checkout(customer, CART, 'moto')
        self.assertIn('customer_address', ctx.exception.details['fields'])
        validate_checkout(customer, CART, 'retiro')

    def test_malformed_lines_are_field_errors(self):
        for line in ({'product_id': 1, 'quantity': '2.5'}, {'product_id': 'abc', 'quantity': 1}, {'quantity': 1}, 'Maceta'):
            with self.assertRaises(ValidationError) as ctx:
                validate_checkout(CUSTOMER, [line], 'moto')
            self.assertIn('items', ctx.exception.details['fields'])

    def test_numeric_strings_are_accepted(self):
        lines = normalize_items([{'product_id': '1', 'quantity': '2'}, {'product_id': 2, 'quantity': 3.0}])
        self.assertEqual([(l['product_id'], l['quantity']) for l in lines], [(1, 2), (2, 3)])

    def test_postal_code_required_for_carrier(self):
        customer = dict(CUSTOMER, customer_postal_code='')
        with self.assertRaises(ValidationError) as ctx:
            validate_checkout(customer, CART, 'correo')
        self.assertIn('customer_postal_code', ctx.exception.details['fields'])


class QuoteCheckoutTestCase(unittest.TestCase):
    def test_moto_zone_scenario(self):
        db = make_db()
        costs = quote_checkout(db, CART, 'moto', postal_code='1846')
        self.assertEqual(costs['subtotal'], 58.5)
        self.assertEqual(costs['shipping_cost'], 2.0)
        self.assertEqual(costs['total'], 60.5)
        self.assertEqual([line['price'] for line in costs['items']], [15, 28.5])

    def test_correo_over_threshold_is_free_without_quote(self):
        db = make_db()
        db.products.find.return_value = [dict(PRODUCT_A, price=20000), PRODUCT_B]
        carrier = MagicMock()
        carrier.quote.return_value = {'cost': 5200, 'options': [], 'estimated_delivery': None}
        costs = quote_checkout(db, CART, 'correo', postal_code='1846', carrier_client=carrier)
        self.assertEqual(costs['shipping_cost'], 0)
        self.assertEqual(costs['total'], 40028.5)
        carrier.quote.assert_not_called()

    def test_correo_uses_live_quote(self):
        db = make_db()
        carrier = MagicMock()
        carrier.quote.return_value = {'cost': 5200.0, 'options': [], 'estimated_delivery': '3-5 días'}
        costs = quote_checkout(db, CART, 'correo', postal_code='1846', carrier_client=carrier)
        self.assertEqual(costs['shipping_cost'], 5200.0)
        self.assertEqual(costs['estimated_delivery'], '3-5 días')
        postal_code, package = carrier.quote.call_args[0]
        self.assertEqual(postal_code, '1846')
        self.assertGreaterEqual(package['weight'], 300)

    def test_correo_quote_failure_blocks_checkout(self):
        db = make_db()
        carrier = MagicMock()
        carrier.quote.side_effect = CarrierQuoteError('Could not quote carrier shipping.')
        with self.assertRaises(CarrierQuoteError):
            quote_checkout(db, CART, 'correo', postal_code='1846', carrier_client=carrier)

    def test_correo_quote_failure_with_fallback_fee(self):
        db = make_db()
        db.shipping_config.find_one.return_value = {'_id': 'default', 'carrier_fallback_fee': 4500}
        carrier = MagicMock()
        carrier.quote.side_effect = CarrierQuoteError('Could not quote carrier shipping.')
        costs = quote_checkout(db, CART, 'correo', postal_code='1846', carrier_client=carrier)
        self.assertEqual(costs['shipping_cost'], 4500)

    def test_malformed_line_is_rejected_before_lookup(self):
        db = make_db()
        with self.assertRaises(ValidationError) as ctx:
            quote_checkout(db, [{'product_id': 'abc', 'quantity': 1}], 'retiro')
        self.assertIn('items', ctx.exception.details['fields'])
        db.products.find.assert_not_called()

    def test_unavailable_sale_type(self):
        db = make_db()
        with self.assertRaises(ValidationError):
            quote_checkout(db, [{'product_id': 1, 'quantity': 1, 'sale_type': 'pack'}], 'retiro')

    def test_missing_product(self):
        db = make_db()
        db.products.find.return_value = [PRODUCT_A]
        with self.assertRaises(ValidationError):
            quote_checkout(db, CART, 'retiro')


class CreateOrderTestCase(unittest.TestCase):
    def setUp(self):
        self.db = make_db()
        self.costs = quote_checkout(self.db, CART, 'moto', postal_code='1846')

    def test_creates_pending_order_with_outbox(self):
        order = create_order(self.db, CUSTOMER, self.costs['items'], 'moto', self.costs, notes='Regalo')
        self.assertEqual(order['status'], 'pending')
        self.assertTrue(order['order_number'].startswith('ORD-'))
        self.assertTrue(order['order_number'].endswith('-0001'))
        self.assertEqual(order['total'], 60.5)
        self.assertEqual(order['balance_due'], 60.5)
        self.assertEqual([e['effect'] for e in order['outbox']],
                         ['deduct_materials', 'notify_webhook', 'send_confirmation_email'])
        self.assertEqual(order['items'][0]['price'], 15)
        inserted = self.db.orders.insert_one.call_args[0][0]
        self.assertIn('outbox', inserted)

    def test_stock_is_reserved_conditionally(self):
        create_order(self.db, CUSTOMER, self.costs['items'], 'moto', self.costs)
        first_call = self.db.products.find_one_and_update.call_args_list[0]
        self.assertEqual(first_call[0][0], {'id': 1, 'stock': {'$gte': 2}})
        self.assertEqual(first_call[0][1], {'$inc': {'stock': -2}})

    def test_insufficient_stock_aborts_before_insert(self):
        self.db.products.find_one_and_update.return_value = None
        self.db.products.find_one.return_value = {'name': 'Maceta', 'stock': 1}
        with self.assertRaises(InsufficientStockError) as ctx:
            create_order(self.db, CUSTOMER, self.costs['items'], 'moto', self.costs)
        self.assertEqual(ctx.exception.details['available'], 1)
        self.db.orders.insert_one.assert_not_called()

    def test_unlimited_stock_products_are_not_reserved(self):
        self.db.products.find_one_and_update.return_value = None
        self.db.products.find_one.return_value = {'name': 'Cartel', 'stock': None}
        order = create_order(self.db, CUSTOMER, self.costs['items'], 'moto', self.costs)
        self.assertEqual(order['status'], 'pending')

    def test_insert_failure_releases_stock(self):
        self.db.orders.insert_one.side_effect = Exception('connection reset')
        with self.assertRaises(OrderStoreError):
            create_order(self.db, CUSTOMER, self.costs['items'], 'moto', self.costs)
        released = [c[0][1] for c in self.db.products.update_one.call_args_list]
        self.assertIn({'$inc': {'stock': 2}}, released)

    def test_validation_failure_touches_nothing(self):
        with self.assertRaises(ValidationError):
            create_order(self.db, dict(CUSTOMER, customer_phone=''), self.costs['items'], 'moto', self.costs)
        self.db.products.find_one_and_update.assert_not_called()


if __name__ == '__main__':
    unittest.main()
