# Overview: Service-layer operations for user accounts; registration, lookups and edits.

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import or_

from ..errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from ..extensions import db
from ..models import User
from ..roles import MANAGER_ASSIGNABLE_ROLES, Principal, Role
from .auth_service import hash_password, new_reset_token, verify_password
from .concurrency import run_atomic
from .pagination import paginate
from .promotions_service import available_one_time_promotions
from rewards.time_utils import to_utc_z, utcnow


def _get_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def register_user(*, utorid: str, name: str, email: str) -> dict:
    """
    Create an inactive regular account. The returned reset token is how the
    new user sets their first password.
    """
    ttl = timedelta(days=current_app.config["ACTIVATION_TOKEN_TTL_DAYS"])

    def _op():
        if db.session.query(User).filter_by(utorid=utorid).first():
            raise ConflictError(f"User with utorid '{utorid}' already exists")
        if db.session.query(User).filter_by(email=email).first():
            raise ConflictError(f"User with email '{email}' already exists")

        user = User(
            utorid=utorid,
            name=name,
            email=email,
            role=Role.REGULAR.label,
            points=0,
            reset_token=new_reset_token(),
            reset_expires_at=utcnow() + ttl,
        )
        db.session.add(user)
        db.session.flush()
        return {
            "id": user.id,
            "utorid": user.utorid,
            "name": user.name,
            "email": user.email,
            "verified": user.verified,
            "expiresAt": to_utc_z(user.reset_expires_at),
            "resetToken": user.reset_token,
        }

    result = run_atomic(_op)
    current_app.logger.info("User registered id=%s utorid=%s", result["id"], utorid)
    return result


def list_users(
    *,
    name: Optional[str] = None,
    role: Optional[str] = None,
    verified: Optional[bool] = None,
    activated: Optional[bool] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
) -> dict:
    query = db.session.query(User)
    if name:
        query = query.filter(or_(User.utorid.contains(name), User.name.contains(name)))
    if role:
        try:
            query = query.filter(User.role == Role.parse(role).label)
        except ValueError:
            raise InvalidInputError(f"Unknown role: {role}") from None
    if verified is not None:
        query = query.filter(User.verified == verified)
    if activated is not None:
        query = query.filter(User.activated == activated)

    total, rows = paginate(query.order_by(User.id), page, limit)
    return {"count": total, "results": [u.to_dict() for u in rows]}


def get_user(user_id: int, viewer: Principal) -> dict:
    """Cashiers get a lookup view; managers get the full record."""
    user = _get_or_404(user_id)
    promotions = available_one_time_promotions(user)
    if viewer.is_manager:
        data = user.to_dict()
    else:
        data = {
            "id": user.id,
            "utorid": user.utorid,
            "name": user.name,
            "points": user.points,
            "verified": user.verified,
        }
    data["promotions"] = promotions
    return data


def get_me(user_id: int) -> dict:
    user = _get_or_404(user_id)
    data = user.to_dict()
    data["promotions"] = available_one_time_promotions(user)
    return data


def update_user(user_id: int, data: dict, updater: Principal) -> dict:
    """
    Manager edits of another account. Only changed fields come back,
    alongside id, utorid and name.
    """
    def _op():
        user = _get_or_404(user_id)
        response = {"id": user.id, "utorid": user.utorid, "name": user.name}

        if data.get("role") is not None:
            new_role = Role.parse(data["role"])
            if updater.role < Role.SUPERUSER and new_role not in MANAGER_ASSIGNABLE_ROLES:
                raise ForbiddenError("Managers can only set the role to cashier or regular")
            user.role = new_role.label
            response["role"] = user.role
            if new_role == Role.CASHIER:
                user.suspicious = False
                response["suspicious"] = False

        if data.get("email") is not None:
            user.email = data["email"]
            response["email"] = user.email

        if data.get("verified") is not None:
            if data["verified"] is not True:
                raise InvalidInputError("verified can only be set to true")
            user.verified = True
            response["verified"] = True

        if data.get("suspicious") is not None:
            user.suspicious = data["suspicious"]
            response["suspicious"] = user.suspicious

        db.session.flush()
        return response

    result = run_atomic(_op)
    current_app.logger.info("User updated id=%s fields=%s", user_id, sorted(data))
    return result


def update_me(user_id: int, data: dict) -> dict:
    def _op():
        user = _get_or_404(user_id)
        if data.get("name") is not None:
            user.name = data["name"]
        if data.get("email") is not None:
            email_taken = (
                db.session.query(User)
                .filter(User.email == data["email"], User.id != user.id)
                .first()
            )
            if email_taken:
                raise ConflictError("Email already in use")
            user.email = data["email"]
        if "birthday" in data:
            user.birthday = data["birthday"]
        if "avatar" in data:
            user.avatar_url = data["avatar"]
        db.session.flush()
        return user.to_dict()

    return run_atomic(_op)


def update_password(user_id: int, old_password: str, new_password: str) -> None:
    def _op():
        user = _get_or_404(user_id)
        if not verify_password(old_password, user.password_hash):
            raise ForbiddenError("Incorrect old password")
        user.password_hash = hash_password(new_password)

    run_atomic(_op)
    current_app.logger.info("Password changed user_id=%s", user_id)
