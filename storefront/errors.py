"""
Exceptions raised by the storefront services and their JSON rendering.

Validation and store errors are surfaced to the caller; side-effect failures
(email, webhook, material deduction) are logged by the outbox and never
reach this module.
"""
import logging
import traceback

from flask import jsonify
from werkzeug.exceptions import HTTPException


class StorefrontError(Exception):
    status_code = 500

    def __init__(self, message, details=None, status_code=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        payload = {'error': self.message}
        payload.update(self.details)
        return payload


class ValidationError(StorefrontError):
    status_code = 400


class NotFoundError(StorefrontError):
    status_code = 404


class CartError(StorefrontError):
    status_code = 409


class InsufficientStockError(StorefrontError):
    status_code = 409


class CarrierQuoteError(StorefrontError):
    status_code = 502


class PaymentError(StorefrontError):
    status_code = 502


class OrderStoreError(StorefrontError):
    status_code = 503


def register_error_handlers(app):
    @app.errorhandler(StorefrontError)
    def handle_storefront_error(e):
        logging.warning(f"{type(e).__name__}: {e.message} | details={e.details}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return e
        tb = traceback.format_exc()
        logging.error(f"Exception: {e}\nTraceback:\n{tb}")
        return jsonify({'error': 'Internal server error'}), 500
