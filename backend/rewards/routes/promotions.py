# Overview: Flask API routes for promotion operations; parses input and returns JSON responses.

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import InvalidInputError
from ..models.promotions import PROMOTION_TYPES
from ..roles import Role
from ..services import promotions_service
from ..validation import DATETIME, INTEGER, NUMBER, STRING, Field, parse_bool_arg, parse_int_arg, validate_payload

promotions_bp = Blueprint("promotions", __name__, url_prefix="/promotions")


def _promotion_fields(*, create: bool) -> dict:
    return {
        "name": Field(STRING, required=create, nullable=not create),
        "description": Field(STRING, required=create, nullable=not create),
        "type": Field(STRING, required=create, nullable=not create, choices=PROMOTION_TYPES),
        "startTime": Field(DATETIME, required=create, nullable=not create),
        "endTime": Field(DATETIME, required=create, nullable=not create),
        "minSpending": Field(NUMBER, nullable=True, minimum=0),
        "rate": Field(NUMBER, nullable=True, minimum=0),
        "points": Field(INTEGER, nullable=True, minimum=0),
    }


CREATE_FIELDS = _promotion_fields(create=True)
UPDATE_FIELDS = _promotion_fields(create=False)


@promotions_bp.route("", methods=["POST"])
@require_auth
@require_role(Role.MANAGER)
def create_promotion():
    data = validate_payload(request.get_json(silent=True), CREATE_FIELDS)
    return jsonify(promotions_service.create_promotion(data)), 201


@promotions_bp.route("", methods=["GET"])
@require_auth
def list_promotions():
    args = request.args
    promo_type = args.get("type") or None
    if promo_type is not None and promo_type not in PROMOTION_TYPES:
        raise InvalidInputError("type must be automatic or one-time")
    result = promotions_service.list_promotions(
        g.principal,
        name=args.get("name") or None,
        promo_type=promo_type,
        started=parse_bool_arg(args, "started"),
        ended=parse_bool_arg(args, "ended"),
        page=parse_int_arg(args, "page"),
        limit=parse_int_arg(args, "limit"),
        sort=args.get("sort"),
    )
    return jsonify(result)


@promotions_bp.route("/<int:promotion_id>", methods=["GET"])
@require_auth
def get_promotion(promotion_id: int):
    return jsonify(promotions_service.get_promotion(promotion_id, g.principal))


@promotions_bp.route("/<int:promotion_id>", methods=["PATCH"])
@require_auth
@require_role(Role.MANAGER)
def update_promotion(promotion_id: int):
    data = validate_payload(request.get_json(silent=True), UPDATE_FIELDS, partial=True)
    return jsonify(promotions_service.update_promotion(promotion_id, data))


@promotions_bp.route("/<int:promotion_id>", methods=["DELETE"])
@require_auth
@require_role(Role.MANAGER)
def delete_promotion(promotion_id: int):
    promotions_service.delete_promotion(promotion_id)
    return "", 204
