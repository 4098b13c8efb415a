# LOGGING MUST BE CONFIGURED BEFORE ANY OTHER IMPORTS OR LOGGING USAGE
import logging
import os

logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(os.environ.get('LOG_FILE', 'error.log'), encoding='utf-8')
    ]
)

import firebase_admin
from firebase_admin import credentials
from flask import Flask
from flask_cors import CORS
from flask_mail import Mail

from storefront.config import load_config
from storefront.db import init_mongo
from storefront.errors import register_error_handlers
from storefront.utils.carrier import CarrierRateClient

mail = Mail()


def init_firebase(app):
    """Initialise the Firebase Admin app used to verify back-office tokens.

    Skipped when no service-account credentials are configured; admin routes
    then reject every request.
    """
    cred_path = app.config.get('FIREBASE_CREDENTIALS')
    if not cred_path:
        logging.warning("FIREBASE_CREDENTIALS not set, admin authentication disabled")
        return None
    try:
        return firebase_admin.get_app(name='default')
    except ValueError:
        logging.info("Initialising Firebase app 'default'")
    options = {'projectId': app.config['FIREBASE_PROJECT_ID']} if app.config.get('FIREBASE_PROJECT_ID') else None
    firebase_app = firebase_admin.initialize_app(credentials.Certificate(cred_path), options, name='default')
    logging.info(f"Firebase app initialised for project {app.config.get('FIREBASE_PROJECT_ID') or '(from credentials)'}")
    return firebase_app


def create_app(config=None):
    app = Flask(__name__)
    app.config.update(load_config())
    if config:
        app.config.update(config)
    CORS(app, supports_credentials=True)
    logging.info(f"BASE_URL at app startup: {app.config['BASE_URL']}")

    # Initialize extensions
    init_mongo(app)
    mail.init_app(app)
    app.extensions['carrier_client'] = CarrierRateClient(
        app.config.get('CARRIER_QUOTE_URL'),
        timeout=app.config.get('CARRIER_TIMEOUT', 10),
        cache_ttl=app.config.get('CARRIER_CACHE_TTL', 600),
    )
    if not app.config.get('TESTING'):
        app.firebase_app = init_firebase(app)

    register_error_handlers(app)

    # Register blueprints
    from .routes.main import main_bp
    app.register_blueprint(main_bp)
    from .routes.auth import auth_bp
    app.register_blueprint(auth_bp)
    from .routes.admin import admin_bp
    app.register_blueprint(admin_bp)
    from .routes.payments import payments_bp
    app.register_blueprint(payments_bp)
    logging.info(f"Registered blueprint endpoints: {[rule.endpoint for rule in app.url_map.iter_rules()]}")

    return app
