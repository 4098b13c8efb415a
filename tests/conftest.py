import logging
from unittest.mock import MagicMock, patch

import pytest

from storefront import create_app

ADMIN_EMAIL = 'admin@shop.test'


def make_test_app(db, **overrides):
    config = {
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'MONGO_DB': db,
        'OUTBOX_DISPATCH': 'off',
        'STRIPE_SECRET_KEY': '',
        'STRIPE_WEBHOOK_SECRET': 'whsec_test_secret',
        'MAIL_SERVER': '',
        'CARRIER_QUOTE_URL': '',
        'NOTIFY_WEBHOOK_URL': '',
        'TIMEZONE': 'America/Argentina/Buenos_Aires',
        'ORDER_NUMBER_PREFIX': 'ORD',
        'ADMIN_EMAILS': [ADMIN_EMAIL],
    }
    config.update(overrides)
    return create_app(config)


# Log all test failures and errors to error.log
@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    outcome = yield
    rep = outcome.get_result()
    if rep.when == 'call' and rep.failed:
        logging.getLogger().error(f"Test {item.nodeid} FAILED\n{rep.longrepr}")


@pytest.fixture
def mock_db():
    return MagicMock()


@pytest.fixture
def app(mock_db):
    return make_test_app(mock_db)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    with client.session_transaction() as sess:
        sess['id_token'] = 'admin-token'
    with patch('storefront.routes.auth.verify_token', return_value={'uid': 'admin-uid', 'email': ADMIN_EMAIL}):
        yield client


@pytest.fixture
def stripe_client(mock_db):
    """Client for an app with a Stripe key configured (payment outcomes come from the gateway)."""
    return make_test_app(mock_db, STRIPE_SECRET_KEY='sk_test_configured').test_client()
