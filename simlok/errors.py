import logging

from flask import jsonify
from marshmallow import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

log = logging.getLogger(__name__)


class SimlokError(Exception):
    status_code = 400

    def __init__(self, message, status_code=None, **extra):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra


class NotFound(SimlokError):
    status_code = 404


class Forbidden(SimlokError):
    status_code = 403


class InvalidTransition(SimlokError):
    status_code = 400


class Conflict(SimlokError):
    status_code = 409


def register_error_handlers(app):
    from simlok import db

    @app.errorhandler(SimlokError)
    def simlok_error(e):
        return jsonify(error=e.message, **e.extra), e.status_code

    @app.errorhandler(ValidationError)
    def validation_error(e):
        return jsonify(error="Data tidak valid", details=e.messages), 400

    @app.errorhandler(SQLAlchemyError)
    def database_error(e):
        db.session.rollback()
        log.exception("Database error: %s", e)
        return jsonify(error="Internal Server Error"), 500

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify(error=e.name), e.code

    @app.errorhandler(500)
    def internal_error(e):
        log.error("Unhandled error: %s", getattr(e, 'original_exception', e))
        return jsonify(error="Internal Server Error"), 500
