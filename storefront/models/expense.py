"""
Expense ledger for the finance dashboard.

Expenses are informational only and have no relation to orders; the monthly
summary compares them with the income of non-cancelled orders.
"""
import calendar
import logging
from datetime import datetime

from pymongo import DESCENDING

from storefront.db import to_object_id
from storefront.errors import NotFoundError, ValidationError

EXPENSE_CATEGORIES = {
    'Filamento': ['PLA', 'PETG', 'TPU', 'ABS', 'FLEX', 'Otros'],
    'Madera': ['MDF 3mm', 'MDF 5.5mm', 'Fibroplus Blanco', 'Fibroplus Negro', 'Otros'],
    'Insumos': ['Laca/Barniz', 'Pegamento', 'Lijas', 'Pinceles', 'Cajas/Embalaje'],
    'Mantenimiento': ['Repuestos Impresora', 'Repuestos Láser', 'Servicio Técnico', 'Limpieza'],
    'Publicidad': ['Instagram Ads', 'Google Ads', 'Folletos', 'Otros'],
    'Servicios': ['Luz', 'Internet', 'Alquiler', 'Suscripciones (Software)'],
    'Otros': ['Varios'],
}


def add_expense(db, date, amount, category, subcategory=None, description=''):
    try:
        datetime.strptime(str(date), '%Y-%m-%d')
    except ValueError:
        raise ValidationError('Expense date must be YYYY-MM-DD')
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        raise ValidationError('Expense amount must be a number')
    if amount <= 0:
        raise ValidationError('Expense amount must be positive')
    if category not in EXPENSE_CATEGORIES:
        raise ValidationError(f'Unknown expense category: {category}')
    if subcategory and subcategory not in EXPENSE_CATEGORIES[category]:
        raise ValidationError(f'Unknown subcategory {subcategory} for {category}')
    expense = {
        'date': str(date),
        'amount': amount,
        'category': category,
        'subcategory': subcategory,
        'description': description or '',
        'created_at': datetime.utcnow(),
    }
    expense['_id'] = db.expenses.insert_one(expense).inserted_id
    logging.info(f"Expense recorded: {category}/{subcategory} {amount} on {date}")
    return expense


def check_period(year, month):
    """Return ``(year, month)`` as ints, raising ValidationError for an impossible month."""
    try:
        year, month = int(year), int(month)
    except (TypeError, ValueError):
        raise ValidationError('year and month must be numbers')
    if not 1 <= month <= 12 or not 1 <= year <= 9999:
        raise ValidationError(f'Invalid period: {year}-{month}', details={'year': year, 'month': month})
    return year, month


def _month_prefix(year, month):
    year, month = check_period(year, month)
    return f'{year:04d}-{month:02d}-'


def list_expenses(db, year=None, month=None):
    query = {}
    if year and month:
        # Dates are stored as YYYY-MM-DD strings, so a month is a prefix match
        query['date'] = {'$regex': f'^{_month_prefix(year, month)}'}
    return list(db.expenses.find(query).sort('date', DESCENDING))


def delete_expense(db, expense_id):
    oid = to_object_id(expense_id)
    result = db.expenses.delete_one({'_id': oid}) if oid else None
    if result is None or result.deleted_count == 0:
        raise NotFoundError(f'Expense {expense_id} not found')


def monthly_summary(db, year, month):
    year, month = check_period(year, month)
    start = datetime(year, month, 1)
    end = datetime(year, month, calendar.monthrange(year, month)[1], 23, 59, 59, 999999)
    orders = db.orders.find(
        {'created_at': {'$gte': start, '$lte': end}, 'status': {'$ne': 'cancelled'}},
        {'total': 1},
    )
    income = round(sum(float(o.get('total') or 0) for o in orders), 2)
    outcome = round(sum(float(e.get('amount') or 0) for e in list_expenses(db, year, month)), 2)
    profit = round(income - outcome, 2)
    margin = round(profit / income * 100, 2) if income > 0 else 0
    return {'year': year, 'month': month, 'income': income, 'outcome': outcome, 'profit': profit, 'margin': margin}
