"""Move [SEÑA: ...] and [ENTREGA: ...] tags out of order notes into payment and delivery fields.

Usage: python scripts/migrate_order_notes.py [--dry-run]
"""
import sys, os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
import argparse

from storefront import create_app
from storefront.db import get_db
from storefront.utils.notes import legacy_migration_update

parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
parser.add_argument('--dry-run', action='store_true', help='show the changes without writing them')
args = parser.parse_args()

app = create_app()
with app.app_context():
    db = get_db()
    query = {'notes': {'$regex': r'\[(SEÑA|ENTREGA):'}}
    migrated = 0
    for order in db.orders.find(query):
        fields = legacy_migration_update(order)
        if not fields:
            continue
        print(f"{order.get('order_number', order['_id'])}: {sorted(fields)}")
        if not args.dry_run:
            db.orders.update_one({'_id': order['_id']}, {'$set': fields})
        migrated += 1
    action = 'Would migrate' if args.dry_run else 'Migrated'
    print(f"{action} {migrated} order(s).")
