# errors.py
from flask import jsonify, request

from core import logger


class BookstoreError(Exception):
    status_code = 400

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {"error": self.message}
        payload.update(self.details)
        return payload


class ValidationError(BookstoreError):
    """Missing or malformed input; nothing was written."""
    status_code = 400


class NotFoundError(BookstoreError):
    status_code = 404


class RevisionConflict(BookstoreError):
    """The record changed since the caller last read it."""
    status_code = 409


class PaymentProviderError(BookstoreError):
    status_code = 502


class WebhookSignatureError(BookstoreError):
    status_code = 400


class FulfillmentError(BookstoreError):
    status_code = 502


class EmailDeliveryError(BookstoreError):
    status_code = 502


def register_error_handlers(app):
    @app.errorhandler(BookstoreError)
    def handle_bookstore_error(err):
        if isinstance(err, (PaymentProviderError, FulfillmentError, EmailDeliveryError)):
            logger.error("external service failure on %s: %s", request.path, err.message)
        else:
            logger.info("%s on %s: %s", type(err).__name__, request.path, err.message)
        return jsonify(err.to_dict()), err.status_code
