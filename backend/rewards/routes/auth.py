# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..services import auth_service, session_service
from ..services.rate_limiter import get_reset_rate_limiter
from ..validation import STRING, Field, validate_payload

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


LOGIN_FIELDS = {
    "utorid": Field(STRING, required=True),
    "password": Field(STRING, required=True),
}

RESET_REQUEST_FIELDS = {
    "utorid": Field(STRING, required=True),
}

RESET_FIELDS = {
    "utorid": Field(STRING, required=True),
    "password": Field(STRING, required=True),
}


@auth_bp.route("/tokens", methods=["POST"])
def login():
    """
    Authenticate user and create session.

    Request body:
    {
        "utorid": "clive123",
        "password": "SecurePass123!"
    }

    Response (200):
    {
        "token": "64-character-hex-token",
        "expiresAt": "2026-01-15T10:30:00.000Z"
    }
    """
    data = validate_payload(request.get_json(silent=True), LOGIN_FIELDS)
    return jsonify(auth_service.login(data["utorid"], data["password"]))


@auth_bp.route("/resets", methods=["POST"])
def request_reset():
    """One reset request per client address per RESET_RATE_LIMIT_SECONDS."""
    data = validate_payload(request.get_json(silent=True), RESET_REQUEST_FIELDS)
    get_reset_rate_limiter().hit(request.remote_addr or "unknown")
    return jsonify(auth_service.request_password_reset(data["utorid"])), 202


@auth_bp.route("/resets/<reset_token>", methods=["POST"])
def reset_password(reset_token: str):
    data = validate_payload(request.get_json(silent=True), RESET_FIELDS)
    auth_service.reset_password(reset_token, data["utorid"], data["password"])
    return jsonify({"message": "Password reset successful"})


@auth_bp.route("/tokens", methods=["DELETE"])
def logout():
    """Revoke the bearer token presented in the Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return jsonify({"error": "Authorization header required"}), 401

    token = auth_header.split(" ", 1)[1]
    if not session_service.revoke_session(token):
        return jsonify({"error": "Invalid or expired token"}), 401
    return jsonify({"message": "Logout successful"})
