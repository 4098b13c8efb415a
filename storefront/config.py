# storefront/config.py
import os
from dotenv import load_dotenv

# Load environment variables from .env if present
load_dotenv()


def load_config():
    """Read application settings from the environment."""
    return {
        'SECRET_KEY': os.environ.get('FLASK_SECRET_KEY', 'storefront-secret-key-here'),
        'MONGODB_URI': os.environ.get('MONGODB_URI', 'mongodb://localhost:27017'),
        'MONGODB_DBNAME': os.environ.get('MONGODB_DBNAME', 'storefront'),
        'BASE_URL': os.environ.get('BASE_URL', 'http://localhost:5000'),
        'TIMEZONE': os.environ.get('TIMEZONE', 'America/Argentina/Buenos_Aires'),
        'ORDER_NUMBER_PREFIX': os.environ.get('ORDER_NUMBER_PREFIX', 'ORD'),
        # Payments (Stripe Checkout)
        'STRIPE_SECRET_KEY': os.environ.get('STRIPE_SECRET_KEY', ''),
        'STRIPE_PUBLIC_KEY': os.environ.get('STRIPE_PUBLIC_KEY', ''),
        'STRIPE_WEBHOOK_SECRET': os.environ.get('STRIPE_WEBHOOK_SECRET', ''),
        'PAYMENT_CURRENCY': os.environ.get('PAYMENT_CURRENCY', 'ars'),
        # Mail
        'MAIL_SERVER': os.environ.get('MAIL_SERVER', ''),
        'MAIL_PORT': int(os.environ.get('MAIL_PORT', 587)),
        'MAIL_USE_TLS': os.environ.get('MAIL_USE_TLS', '1') in ['1', 'true', 'True'],
        'MAIL_USERNAME': os.environ.get('MAIL_USERNAME', ''),
        'MAIL_PASSWORD': os.environ.get('MAIL_PASSWORD', ''),
        'MAIL_DEFAULT_SENDER': os.environ.get('MAIL_DEFAULT_SENDER') or os.environ.get('MAIL_USERNAME', ''),
        # Carrier rate API (national carrier quotes)
        'CARRIER_QUOTE_URL': os.environ.get('CARRIER_QUOTE_URL', ''),
        'CARRIER_TIMEOUT': float(os.environ.get('CARRIER_TIMEOUT', 10)),
        'CARRIER_CACHE_TTL': int(os.environ.get('CARRIER_CACHE_TTL', 600)),
        # Order notifications
        'NOTIFY_WEBHOOK_URL': os.environ.get('NOTIFY_WEBHOOK_URL', ''),
        'NOTIFY_TIMEOUT': float(os.environ.get('NOTIFY_TIMEOUT', 10)),
        # Side-effect outbox
        'OUTBOX_DISPATCH': os.environ.get('OUTBOX_DISPATCH', 'thread'),
        'OUTBOX_MAX_ATTEMPTS': int(os.environ.get('OUTBOX_MAX_ATTEMPTS', 5)),
        'OUTBOX_BACKOFF_SECONDS': int(os.environ.get('OUTBOX_BACKOFF_SECONDS', 60)),
        # Admin auth (Firebase)
        'FIREBASE_PROJECT_ID': os.environ.get('FIREBASE_PROJECT_ID', ''),
        'FIREBASE_CREDENTIALS': os.environ.get('FIREBASE_CREDENTIALS', ''),
        'ADMIN_EMAILS': [e.strip().lower() for e in os.environ.get('ADMIN_EMAILS', '').split(',') if e.strip()],
    }
