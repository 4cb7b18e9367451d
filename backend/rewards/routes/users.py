# Overview: Flask API routes for user accounts; parses input and returns JSON responses.

from __future__ import annotations

import re

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import InvalidInputError
from ..models.transactions import TX_REDEMPTION, TX_TRANSFER
from ..roles import ROLE_LABELS, Role
from ..services import accounting_service, transaction_query_service, users_service
from ..validation import (
    BOOLEAN,
    DATE,
    INTEGER,
    STRING,
    Field,
    parse_bool_arg,
    parse_int_arg,
    validate_payload,
)

users_bp = Blueprint("users", __name__, url_prefix="/users")


UTORID_PATTERN = re.compile(r"^[A-Za-z0-9]{7,8}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@mail\.utoronto\.ca$")

REGISTER_FIELDS = {
    "utorid": Field(STRING, required=True),
    "name": Field(STRING, required=True, max_length=50),
    "email": Field(STRING, required=True),
}

UPDATE_USER_FIELDS = {
    "email": Field(STRING, nullable=True),
    "verified": Field(BOOLEAN, nullable=True),
    "suspicious": Field(BOOLEAN, nullable=True),
    "role": Field(STRING, nullable=True, choices=tuple(ROLE_LABELS)),
}

UPDATE_ME_FIELDS = {
    "name": Field(STRING, nullable=True, max_length=50),
    "email": Field(STRING, nullable=True),
    "birthday": Field(DATE, nullable=True),
    "avatar": Field(STRING, nullable=True),
}

PASSWORD_FIELDS = {
    "old": Field(STRING, required=True),
    "new": Field(STRING, required=True),
}

REDEMPTION_FIELDS = {
    "type": Field(STRING, required=True, choices=(TX_REDEMPTION,)),
    "amount": Field(INTEGER, required=True, minimum=0),
    "remark": Field(STRING, nullable=True),
}

TRANSFER_FIELDS = {
    "type": Field(STRING, required=True, choices=(TX_TRANSFER,)),
    "amount": Field(INTEGER, required=True, minimum=1),
    "remark": Field(STRING, nullable=True),
}


def _check_email(email):
    if email is not None and not EMAIL_PATTERN.match(email):
        raise InvalidInputError("email must be a valid University of Toronto address")


@users_bp.route("", methods=["POST"])
@require_auth
@require_role(Role.CASHIER)
def register_user():
    data = validate_payload(request.get_json(silent=True), REGISTER_FIELDS)
    if not UTORID_PATTERN.match(data["utorid"]):
        raise InvalidInputError("utorid must be 7-8 alphanumeric characters")
    _check_email(data["email"])
    result = users_service.register_user(utorid=data["utorid"], name=data["name"], email=data["email"])
    return jsonify(result), 201


@users_bp.route("", methods=["GET"])
@require_auth
@require_role(Role.MANAGER)
def list_users():
    args = request.args
    result = users_service.list_users(
        name=args.get("name"),
        role=args.get("role"),
        verified=parse_bool_arg(args, "verified"),
        activated=parse_bool_arg(args, "activated"),
        page=parse_int_arg(args, "page"),
        limit=parse_int_arg(args, "limit"),
    )
    return jsonify(result)


@users_bp.route("/me", methods=["GET"])
@require_auth
def get_me():
    return jsonify(users_service.get_me(g.principal.id))


@users_bp.route("/me", methods=["PATCH"])
@require_auth
def update_me():
    data = validate_payload(request.get_json(silent=True), UPDATE_ME_FIELDS, partial=True)
    if not data:
        raise InvalidInputError("No fields to update")
    _check_email(data.get("email"))
    return jsonify(users_service.update_me(g.principal.id, data))


@users_bp.route("/me/password", methods=["PATCH"])
@require_auth
def update_password():
    data = validate_payload(request.get_json(silent=True), PASSWORD_FIELDS)
    users_service.update_password(g.principal.id, data["old"], data["new"])
    return jsonify({"message": "Password updated"})


@users_bp.route("/me/transactions", methods=["POST"])
@require_auth
def create_redemption():
    data = validate_payload(request.get_json(silent=True), REDEMPTION_FIELDS)
    result = accounting_service.create_redemption_request(
        utorid=g.principal.utorid,
        amount=data["amount"],
        remark=data.get("remark"),
    )
    return jsonify(result), 201


@users_bp.route("/me/transactions", methods=["GET"])
@require_auth
def list_my_transactions():
    args = request.args
    filters = transaction_query_service.TransactionFilters(
        type=args.get("type") or None,
        related_id=parse_int_arg(args, "relatedId"),
        promotion_id=parse_int_arg(args, "promotionId"),
        amount=parse_int_arg(args, "amount"),
        operator=args.get("operator") or None,
        page=parse_int_arg(args, "page"),
        limit=parse_int_arg(args, "limit"),
        sort=args.get("sort"),
    )
    return jsonify(transaction_query_service.list_user_transactions(g.principal.id, filters))


@users_bp.route("/<int:user_id>", methods=["GET"])
@require_auth
@require_role(Role.CASHIER)
def get_user(user_id: int):
    return jsonify(users_service.get_user(user_id, g.principal))


@users_bp.route("/<int:user_id>", methods=["PATCH"])
@require_auth
@require_role(Role.MANAGER)
def update_user(user_id: int):
    data = validate_payload(request.get_json(silent=True), UPDATE_USER_FIELDS, partial=True)
    if not any(v is not None for v in data.values()):
        raise InvalidInputError("No fields to update")
    _check_email(data.get("email"))
    return jsonify(users_service.update_user(user_id, data, g.principal))


@users_bp.route("/<int:user_id>/transactions", methods=["POST"])
@require_auth
def create_transfer(user_id: int):
    data = validate_payload(request.get_json(silent=True), TRANSFER_FIELDS)
    result = accounting_service.create_transfer(
        sender_utorid=g.principal.utorid,
        recipient_id=user_id,
        amount=data["amount"],
        remark=data.get("remark"),
    )
    return jsonify(result), 201

