# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Uses bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (BCRYPT_ROUNDS, 12 by default)
- 8-20 characters: uppercase, lowercase, digit and one of @$!%*?&
- Session tokens managed separately (see session_service.py)
- Reset tokens double as account-activation tokens for new users
"""

import re
import uuid
from datetime import timedelta

import bcrypt
from flask import current_app

from ..errors import GoneError, InvalidInputError, NotFoundError, UnauthorizedError
from ..extensions import db
from ..models import User
from . import session_service
from .concurrency import run_atomic
from rewards.time_utils import to_utc_z, utcnow


PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,20}$")

PASSWORD_RULES = (
    "Password must be 8-20 characters, include at least one uppercase letter, "
    "one lowercase letter, one number, and one special character"
)


def validate_password_strength(password: str) -> None:
    """Raises InvalidInputError if the password does not meet the policy."""
    if not isinstance(password, str) or not PASSWORD_PATTERN.match(password):
        raise InvalidInputError(PASSWORD_RULES)


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt (cost factor from BCRYPT_ROUNDS, default 12).

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns False for accounts that have never set a password.
    """
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def new_reset_token() -> str:
    return str(uuid.uuid4())


def login(utorid: str, password: str) -> dict:
    """
    Exchange credentials for a bearer token.

    First successful login activates the account; every login stamps
    last_login.
    """
    def _op():
        user = db.session.query(User).filter_by(utorid=utorid).first()
        if not user or not verify_password(password, user.password_hash):
            raise UnauthorizedError("Invalid utorid or password")

        user.activated = True
        user.last_login = utcnow()
        session, token = session_service.create_session(user.id)
        db.session.flush()
        return {"token": token, "expiresAt": to_utc_z(session.expires_at)}, user.id

    result, user_id = run_atomic(_op)
    current_app.logger.info("Login user_id=%s", user_id)
    return result


def request_password_reset(utorid: str) -> dict:
    """Issue a fresh reset token. The caller applies rate limiting."""
    ttl = timedelta(minutes=current_app.config["RESET_TOKEN_TTL_MINUTES"])

    def _op():
        user = db.session.query(User).filter_by(utorid=utorid).first()
        if not user:
            raise NotFoundError("User does not exist")
        user.reset_token = new_reset_token()
        user.reset_expires_at = utcnow() + ttl
        return {"resetToken": user.reset_token, "expiresAt": to_utc_z(user.reset_expires_at)}

    result = run_atomic(_op)
    current_app.logger.info("Password reset requested utorid=%s", utorid)
    return result


def reset_password(reset_token: str, utorid: str, password: str) -> None:
    """
    Set a new password from a reset (or activation) token.

    The token is single-use: it is cleared on success.
    """
    validate_password_strength(password)

    def _op():
        user = db.session.query(User).filter_by(reset_token=reset_token).first()
        if not user:
            raise NotFoundError("Invalid or expired reset token")
        if user.utorid != utorid:
            raise UnauthorizedError("User mismatch for reset token")
        if user.reset_expires_at is None or user.reset_expires_at <= utcnow():
            raise GoneError("Reset token expired")

        user.password_hash = hash_password(password)
        user.reset_token = None
        user.reset_expires_at = None

    run_atomic(_op)
    current_app.logger.info("Password reset completed utorid=%s", utorid)
