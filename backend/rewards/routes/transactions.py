# Overview: Flask API routes for ledger transactions; parses input and returns JSON responses.

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ForbiddenError, InvalidInputError
from ..models.transactions import TX_ADJUSTMENT, TX_PURCHASE
from ..roles import Role
from ..services import (
    accounting_service,
    reconciliation_service,
    redemption_service,
    transaction_query_service,
)
from ..validation import (
    BOOLEAN,
    INT_LIST,
    INTEGER,
    NUMBER,
    STRING,
    Field,
    parse_bool_arg,
    parse_int_arg,
    validate_payload,
)

transactions_bp = Blueprint("transactions", __name__, url_prefix="/transactions")


PURCHASE_FIELDS = {
    "utorid": Field(STRING, required=True),
    "type": Field(STRING, required=True),
    "spent": Field(NUMBER, required=True, minimum=0),
    "promotionIds": Field(INT_LIST, nullable=True),
    "remark": Field(STRING, nullable=True),
}

ADJUSTMENT_FIELDS = {
    "utorid": Field(STRING, required=True),
    "type": Field(STRING, required=True),
    "amount": Field(INTEGER, required=True),
    "relatedId": Field(INTEGER, required=True),
    "promotionIds": Field(INT_LIST, nullable=True),
    "remark": Field(STRING, nullable=True),
}

SUSPICIOUS_FIELDS = {
    "suspicious": Field(BOOLEAN, required=True),
}

PROCESSED_FIELDS = {
    "processed": Field(BOOLEAN, required=True),
}


@transactions_bp.route("", methods=["POST"])
@require_auth
@require_role(Role.CASHIER)
def create_transaction():
    """
    Ring up a purchase (cashier+) or post an adjustment (manager+).

    Purchase body:
    {
        "utorid": "clive123",
        "type": "purchase",
        "spent": 19.99,
        "promotionIds": [42],
        "remark": ""
    }
    """
    payload = request.get_json(silent=True) or {}
    tx_type = payload.get("type") if isinstance(payload, dict) else None

    if tx_type == TX_PURCHASE:
        data = validate_payload(payload, PURCHASE_FIELDS)
        result = accounting_service.create_purchase(
            utorid=data["utorid"],
            spent=data["spent"],
            promotion_ids=data.get("promotionIds"),
            created_by=g.principal.utorid,
            remark=data.get("remark"),
        )
        return jsonify(result), 201

    if tx_type == TX_ADJUSTMENT:
        if g.principal.role < Role.MANAGER:
            raise ForbiddenError("Only managers can create adjustments")
        data = validate_payload(payload, ADJUSTMENT_FIELDS)
        result = accounting_service.create_adjustment(
            utorid=data["utorid"],
            amount=data["amount"],
            related_id=data["relatedId"],
            promotion_ids=data.get("promotionIds"),
            created_by=g.principal.utorid,
            remark=data.get("remark"),
        )
        return jsonify(result), 201

    raise InvalidInputError("type must be purchase or adjustment")


@transactions_bp.route("", methods=["GET"])
@require_auth
@require_role(Role.MANAGER)
def list_transactions():
    args = request.args
    filters = transaction_query_service.TransactionFilters(
        name=args.get("name") or None,
        created_by=args.get("createdBy") or None,
        type=args.get("type") or None,
        promotion_id=parse_int_arg(args, "promotionId"),
        related_id=parse_int_arg(args, "relatedId"),
        suspicious=parse_bool_arg(args, "suspicious"),
        amount=parse_int_arg(args, "amount"),
        operator=args.get("operator") or None,
        page=parse_int_arg(args, "page"),
        limit=parse_int_arg(args, "limit"),
        sort=args.get("sort"),
    )
    return jsonify(transaction_query_service.list_transactions(filters))


@transactions_bp.route("/<int:transaction_id>", methods=["GET"])
@require_auth
@require_role(Role.MANAGER)
def get_transaction(transaction_id: int):
    return jsonify(transaction_query_service.get_transaction(transaction_id))


@transactions_bp.route("/<int:transaction_id>/suspicious", methods=["PATCH"])
@require_auth
@require_role(Role.MANAGER)
def set_suspicious(transaction_id: int):
    data = validate_payload(request.get_json(silent=True), SUSPICIOUS_FIELDS)
    return jsonify(reconciliation_service.set_suspicious(transaction_id, data["suspicious"]))


@transactions_bp.route("/<int:transaction_id>/processed", methods=["PATCH"])
@require_auth
@require_role(Role.CASHIER)
def process_redemption(transaction_id: int):
    data = validate_payload(request.get_json(silent=True), PROCESSED_FIELDS)
    if data["processed"] is not True:
        raise InvalidInputError("processed can only be set to true")
    return jsonify(redemption_service.process_redemption(transaction_id, g.principal.utorid))
