import logging
from datetime import datetime

import requests


def build_order_event(order):
    return {
        'event': 'order.created',
        'order_id': str(order.get('_id')),
        'order_number': order.get('order_number'),
        'customer_name': order.get('customer_name'),
        'total': order.get('total'),
        'timestamp': datetime.utcnow().isoformat(),
    }


def notify_order_created(order, webhook_url, timeout=10):
    """POST the order.created event to the shop's automation webhook.

    Returns False when no webhook is configured. HTTP failures raise so the
    outbox can retry them.
    """
    if not webhook_url:
        logging.warning(f"[Notify] NOTIFY_WEBHOOK_URL not set, skipping notification for {order.get('order_number')}")
        return False
    response = requests.post(webhook_url, json=build_order_event(order), timeout=timeout)
    response.raise_for_status()
    logging.info(f"[Notify] order.created sent for {order.get('order_number')} | status={response.status_code}")
    return True
