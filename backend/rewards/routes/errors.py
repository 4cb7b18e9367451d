# Overview: App-wide error handlers mapping service errors to JSON responses.

from __future__ import annotations

from flask import current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from ..errors import RewardsError
from ..extensions import db


def register_error_handlers(app) -> None:
    """Map service errors to JSON bodies; anything unexpected becomes a 500."""

    @app.errorhandler(RewardsError)
    def handle_rewards_error(exc: RewardsError):
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"error": exc.description or exc.name}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        db.session.rollback()
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500
