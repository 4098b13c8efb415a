"""Retry pending order side effects (confirmation email, notification webhook).

Run periodically, e.g. from cron: python scripts/process_outbox.py
"""
import sys, os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from storefront import create_app
from storefront.db import get_db
from storefront.utils.outbox import process_pending_outbox

app = create_app()
with app.app_context():
    processed = process_pending_outbox(get_db(), config=app.config)
    print(f"Processed outbox for {processed} order(s).")
