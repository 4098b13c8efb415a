#outbox.py
#Order side effects recorded in the order document and run after the insert.
#Entry status: pending -> running -> done | failed (or back to pending with a backoff).

import logging
import threading
from datetime import datetime, timedelta

from storefront.utils.deduction import deduct_materials_for_order
from storefront.utils.email import send_order_confirmation
from storefront.utils.notify import notify_order_created

# Partially applied deductions must not be applied twice
NON_RETRYABLE_EFFECTS = ('deduct_materials',)


def _deduct_materials(db, order, config):
    return deduct_materials_for_order(db, order)


def _notify_webhook(db, order, config):
    return notify_order_created(order, config.get('NOTIFY_WEBHOOK_URL'), config.get('NOTIFY_TIMEOUT', 10))


def _send_confirmation_email(db, order, config):
    return send_order_confirmation(order)


DEFAULT_HANDLERS = {
    'deduct_materials': _deduct_materials,
    'notify_webhook': _notify_webhook,
    'send_confirmation_email': _send_confirmation_email,
}


def backoff_delay(attempts, backoff_seconds):
    return timedelta(seconds=backoff_seconds * (2 ** max(attempts - 1, 0)))


def _is_due(entry, now):
    if entry.get('status') != 'pending':
        return False
    next_attempt_at = entry.get('next_attempt_at')
    return next_attempt_at is None or next_attempt_at <= now


def process_order_outbox(db, order, config=None, handlers=None, now=None):
    """Run every due outbox entry of ``order`` once.

    Each entry is claimed with a conditional update so a background thread
    and the retry script never run the same effect twice. Returns
    ``{effect: final status}`` for the entries that ran.
    """
    config = config or {}
    handlers = handlers or DEFAULT_HANDLERS
    now = now or datetime.utcnow()
    max_attempts = int(config.get('OUTBOX_MAX_ATTEMPTS', 5))
    backoff_seconds = int(config.get('OUTBOX_BACKOFF_SECONDS', 60))
    results = {}

    for index, entry in enumerate(order.get('outbox') or []):
        if not _is_due(entry, now):
            continue
        effect = entry.get('effect')
        handler = handlers.get(effect)
        if handler is None:
            logging.warning(f"[Outbox] No handler for effect '{effect}' on order {order.get('order_number')}")
            continue
        prefix = f'outbox.{index}'
        claimed = db.orders.update_one(
            {'_id': order['_id'], f'{prefix}.effect': effect, f'{prefix}.status': 'pending'},
            {'$set': {f'{prefix}.status': 'running'}},
        )
        if claimed.modified_count == 0:
            continue

        attempts = int(entry.get('attempts') or 0) + 1
        fields = {f'{prefix}.attempts': attempts}
        try:
            handler(db, order, config)
        except Exception as e:
            retry = effect not in NON_RETRYABLE_EFFECTS and attempts < max_attempts
            fields[f'{prefix}.last_error'] = str(e)
            if retry:
                fields[f'{prefix}.status'] = 'pending'
                fields[f'{prefix}.next_attempt_at'] = now + backoff_delay(attempts, backoff_seconds)
            else:
                fields[f'{prefix}.status'] = 'failed'
            logging.error(
                f"[Outbox] {effect} failed for order {order.get('order_number')} "
                f"(attempt {attempts}/{max_attempts}, retry={retry}): {e}"
            )
        else:
            fields[f'{prefix}.status'] = 'done'
            fields[f'{prefix}.last_error'] = None
            logging.info(f"[Outbox] {effect} done for order {order.get('order_number')}")
        db.orders.update_one({'_id': order['_id']}, {'$set': fields})
        results[effect] = fields[f'{prefix}.status']
    return results


def process_pending_outbox(db, config=None, handlers=None, now=None):
    """Retry pass over every order with a due outbox entry; returns the number of orders visited."""
    now = now or datetime.utcnow()
    query = {'outbox': {'$elemMatch': {'status': 'pending', 'next_attempt_at': {'$lte': now}}}}
    count = 0
    for order in db.orders.find(query):
        process_order_outbox(db, order, config=config, handlers=handlers, now=now)
        count += 1
    logging.info(f"[Outbox] Retry pass complete | orders={count}")
    return count


def dispatch_outbox(app, order):
    """Run a freshly inserted order's side effects according to OUTBOX_DISPATCH.

    ``thread`` (default) runs them in a daemon thread with an app context,
    ``inline`` runs them before returning and ``off`` leaves them for the
    retry script.
    """
    mode = app.config.get('OUTBOX_DISPATCH', 'thread')
    if mode == 'off':
        return None

    def run():
        with app.app_context():
            try:
                process_order_outbox(app.extensions['mongo_db'], order, config=app.config)
            except Exception as e:
                logging.error(f"[Outbox] Dispatch failed for order {order.get('order_number')}: {e}", exc_info=True)

    if mode == 'inline':
        run()
        return None
    thread = threading.Thread(target=run, name=f"outbox-{order.get('order_number')}", daemon=True)
    thread.start()
    return thread
