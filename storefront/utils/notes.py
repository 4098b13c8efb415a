#notes.py
#Parser for the bracket tags older back-office versions appended to order notes.

import logging
import re
from datetime import date

DEPOSIT_TAG = re.compile(r'\[SEÑA:\s*\$\s*([\d.,]+)\s*/\s*RESTA:\s*\$\s*([\d.,]+)\s*\]')
DELIVERY_TAG = re.compile(r'\[ENTREGA:\s*(\d{1,2})/(\d{1,2})/(\d{4})\s*\]')


def _amount(text):
    # Amounts were written with JS number formatting: no thousands separator
    return float(text.replace(',', '.'))


def parse_legacy_notes(notes):
    """Extract deposit and delivery tags from free-text notes.

    Returns a dict with ``deposit``, ``balance`` (floats or None),
    ``delivery_date`` (YYYY-MM-DD or None) and ``notes`` with the tags removed.
    """
    result = {'deposit': None, 'balance': None, 'delivery_date': None, 'notes': notes or ''}
    if not notes:
        return result
    deposit = DEPOSIT_TAG.search(notes)
    if deposit:
        try:
            result['deposit'] = _amount(deposit.group(1))
            result['balance'] = _amount(deposit.group(2))
        except ValueError:
            logging.warning(f"[Notes] unreadable deposit tag: {deposit.group(0)}")
    delivery = DELIVERY_TAG.search(notes)
    if delivery:
        day, month, year = (int(g) for g in delivery.groups())
        try:
            result['delivery_date'] = date(year, month, day).isoformat()
        except ValueError:
            logging.warning(f"[Notes] invalid delivery date tag: {delivery.group(0)}")
    cleaned = DELIVERY_TAG.sub('', DEPOSIT_TAG.sub('', notes))
    result['notes'] = '\n'.join(line for line in cleaned.splitlines() if line.strip()).strip()
    return result


def legacy_migration_update(order):
    """``$set`` fields that move an order's note tags into first-class fields.

    Returns None when the notes carry no tags or the order already has
    structured payments, so running the migration twice changes nothing.
    """
    if order.get('payments'):
        return None
    parsed = parse_legacy_notes(order.get('notes'))
    if parsed['deposit'] is None and parsed['delivery_date'] is None:
        return None
    fields = {'notes': parsed['notes'] or None}
    if parsed['deposit'] is not None:
        total = float(order.get('total') or 0)
        fields['payments'] = [{
            'amount': parsed['deposit'],
            'method': 'legacy',
            'note': 'Deposit migrated from order notes',
            'recorded_at': order.get('created_at'),
        }]
        fields['amount_paid'] = parsed['deposit']
        fields['balance_due'] = round(total - parsed['deposit'], 2) if total else parsed['balance']
    if parsed['delivery_date'] is not None and not order.get('promised_delivery_date'):
        fields['promised_delivery_date'] = parsed['delivery_date']
    return fields
