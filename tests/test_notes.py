"""
test_notes.py
Tests the legacy order-notes tag parser in storefront/utils/notes.py.
"""
from storefront.utils.notes import legacy_migration_update, parse_legacy_notes


def test_parses_deposit_and_delivery():
    notes = 'VENTA MANUAL: llavero grabado\n[SEÑA: $5000 / RESTA: $7500]\n[ENTREGA: 05/12/2025]'
    parsed = parse_legacy_notes(notes)
    assert parsed['deposit'] == 5000
    assert parsed['balance'] == 7500
    assert parsed['delivery_date'] == '2025-12-05'
    assert parsed['notes'] == 'VENTA MANUAL: llavero grabado'


def test_decimal_amounts():
    parsed = parse_legacy_notes('[SEÑA: $1500.5 / RESTA: $499.5]')
    assert parsed['deposit'] == 1500.5
    assert parsed['balance'] == 499.5


def test_notes_without_tags():
    parsed = parse_legacy_notes('Entregar por la tarde')
    assert parsed['deposit'] is None
    assert parsed['delivery_date'] is None
    assert parsed['notes'] == 'Entregar por la tarde'


def test_invalid_date_is_ignored():
    parsed = parse_legacy_notes('[ENTREGA: 31/02/2025]')
    assert parsed['delivery_date'] is None


def test_empty_notes():
    assert parse_legacy_notes(None)['notes'] == ''


def test_migration_update_moves_tags_to_fields():
    order = {'total': 12500, 'notes': 'VENTA MANUAL: \n[SEÑA: $5000 / RESTA: $7500]\n[ENTREGA: 05/12/2025]'}
    fields = legacy_migration_update(order)
    assert fields['amount_paid'] == 5000
    assert fields['balance_due'] == 7500
    assert fields['payments'][0]['amount'] == 5000
    assert fields['promised_delivery_date'] == '2025-12-05'
    assert fields['notes'] == 'VENTA MANUAL:'


def test_migration_update_is_idempotent():
    order = {'total': 100, 'notes': '[SEÑA: $50 / RESTA: $50]', 'payments': [{'amount': 50}]}
    assert legacy_migration_update(order) is None
    assert legacy_migration_update({'notes': 'sin etiquetas'}) is None
