import logging

from flask import current_app
from flask_mail import Message

from storefront.utils.shipping import SHIPPING_METHOD_LABELS


def _order_lines(order):
    lines = []
    for item in order.get('items') or []:
        sale_type = item.get('sale_type') or 'unit'
        suffix = '' if sale_type == 'unit' else f' ({sale_type})'
        lines.append(f"{item.get('quantity')} x {item.get('name')}{suffix} - ${float(item.get('price') or 0):,.2f}")
    return '\n'.join(lines)


def build_confirmation_message(order, sender):
    """
    Build the order confirmation email.
    :param order: Persisted order document
    :param sender: From address (MAIL_DEFAULT_SENDER)
    """
    method = SHIPPING_METHOD_LABELS.get(order.get('shipping_method'), order.get('shipping_method'))
    details = _order_lines(order)
    msg = Message(
        subject=f"Order {order.get('order_number')} received",
        sender=sender,
        recipients=[order['customer_email']],
    )
    msg.body = f"""
    Thank you for your order, {order.get('customer_name')}!

    Order number: {order.get('order_number')}

    Order Details:
    {details}

    Shipping ({method}): ${float(order.get('shipping_cost') or 0):,.2f}
    Total: ${float(order.get('total') or 0):,.2f}
    """
    msg.html = f"""
    <html><body>
    <h2>Thank you for your order!</h2>
    <p><strong>Order number:</strong> {order.get('order_number')}</p>
    <p><strong>Order Details:</strong></p>
    <pre>{details}</pre>
    <p><strong>Shipping ({method}):</strong> ${float(order.get('shipping_cost') or 0):,.2f}</p>
    <p><strong>Total:</strong> ${float(order.get('total') or 0):,.2f}</p>
    </body></html>
    """
    return msg


def send_order_confirmation(order):
    """Send the confirmation through Flask-Mail; returns False when mail is not configured."""
    if not current_app.config.get('MAIL_SERVER'):
        logging.warning(f"[Email] MAIL_SERVER not set, skipping confirmation for {order.get('order_number')}")
        return False
    if not order.get('customer_email'):
        logging.warning(f"[Email] Order {order.get('order_number')} has no customer email")
        return False
    sender = current_app.config.get('MAIL_DEFAULT_SENDER') or current_app.config.get('MAIL_USERNAME')
    msg = build_confirmation_message(order, sender)
    current_app.extensions['mail'].send(msg)
    logging.info(f"[Email] Confirmation sent to {order['customer_email']} for {order.get('order_number')}")
    return True
