# Overview: Flask API routes for event operations; parses input and returns JSON responses.

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_role
from ..models.transactions import TX_EVENT
from ..roles import Role
from ..services import accounting_service, events_service
from ..validation import (
    BOOLEAN,
    DATETIME,
    INTEGER,
    STRING,
    Field,
    parse_bool_arg,
    parse_int_arg,
    validate_payload,
)

events_bp = Blueprint("events", __name__, url_prefix="/events")


CREATE_FIELDS = {
    "name": Field(STRING, required=True),
    "description": Field(STRING, required=True),
    "location": Field(STRING, required=True),
    "startTime": Field(DATETIME, required=True),
    "endTime": Field(DATETIME, required=True),
    "capacity": Field(INTEGER, nullable=True, minimum=1),
    "points": Field(INTEGER, required=True, minimum=1),
}

UPDATE_FIELDS = {
    "name": Field(STRING, nullable=True),
    "description": Field(STRING, nullable=True),
    "location": Field(STRING, nullable=True),
    "startTime": Field(DATETIME, nullable=True),
    "endTime": Field(DATETIME, nullable=True),
    "capacity": Field(INTEGER, nullable=True, minimum=1),
    "points": Field(INTEGER, nullable=True, minimum=1),
    "published": Field(BOOLEAN, nullable=True),
}

UTORID_FIELDS = {
    "utorid": Field(STRING, required=True),
}

AWARD_FIELDS = {
    "type": Field(STRING, required=True, choices=(TX_EVENT,)),
    "utorid": Field(STRING, nullable=True),
    "amount": Field(INTEGER, required=True, minimum=1),
    "remark": Field(STRING, nullable=True),
}


@events_bp.route("", methods=["POST"])
@require_auth
@require_role(Role.MANAGER)
def create_event():
    data = validate_payload(request.get_json(silent=True), CREATE_FIELDS)
    return jsonify(events_service.create_event(data, g.principal.id)), 201


@events_bp.route("", methods=["GET"])
@require_auth
def list_events():
    args = request.args
    result = events_service.list_events(
        g.principal,
        name=args.get("name") or None,
        location=args.get("location") or None,
        started=parse_bool_arg(args, "started"),
        ended=parse_bool_arg(args, "ended"),
        show_full=bool(parse_bool_arg(args, "showFull")),
        published=parse_bool_arg(args, "published"),
        page=parse_int_arg(args, "page"),
        limit=parse_int_arg(args, "limit"),
        sort=args.get("sort"),
    )
    return jsonify(result)


@events_bp.route("/<int:event_id>", methods=["GET"])
@require_auth
def get_event(event_id: int):
    return jsonify(events_service.get_event(event_id, g.principal))


@events_bp.route("/<int:event_id>", methods=["PATCH"])
@require_auth
def update_event(event_id: int):
    data = validate_payload(request.get_json(silent=True), UPDATE_FIELDS, partial=True)
    return jsonify(events_service.update_event(event_id, data, g.principal))


@events_bp.route("/<int:event_id>", methods=["DELETE"])
@require_auth
@require_role(Role.MANAGER)
def delete_event(event_id: int):
    events_service.delete_event(event_id)
    return "", 204


@events_bp.route("/<int:event_id>/organizers", methods=["POST"])
@require_auth
@require_role(Role.MANAGER)
def add_organizer(event_id: int):
    data = validate_payload(request.get_json(silent=True), UTORID_FIELDS)
    return jsonify(events_service.add_organizer(event_id, data["utorid"])), 201


@events_bp.route("/<int:event_id>/organizers/<int:user_id>", methods=["DELETE"])
@require_auth
@require_role(Role.MANAGER)
def remove_organizer(event_id: int, user_id: int):
    events_service.remove_organizer(event_id, user_id)
    return "", 204


@events_bp.route("/<int:event_id>/guests/me", methods=["POST"])
@require_auth
def add_guest_me(event_id: int):
    return jsonify(events_service.add_guest_me(event_id, g.principal)), 201


@events_bp.route("/<int:event_id>/guests/me", methods=["DELETE"])
@require_auth
def remove_guest_me(event_id: int):
    events_service.remove_guest_me(event_id, g.principal)
    return "", 204


@events_bp.route("/<int:event_id>/guests", methods=["POST"])
@require_auth
def add_guest(event_id: int):
    data = validate_payload(request.get_json(silent=True), UTORID_FIELDS)
    return jsonify(events_service.add_guest(event_id, data["utorid"], g.principal)), 201


@events_bp.route("/<int:event_id>/guests/<int:user_id>", methods=["DELETE"])
@require_auth
@require_role(Role.MANAGER)
def remove_guest(event_id: int, user_id: int):
    events_service.remove_guest(event_id, user_id)
    return "", 204


@events_bp.route("/<int:event_id>/transactions", methods=["POST"])
@require_auth
def award_points(event_id: int):
    data = validate_payload(request.get_json(silent=True), AWARD_FIELDS)
    result = accounting_service.create_event_award(
        event_id=event_id,
        amount=data["amount"],
        actor=g.principal,
        utorid=data.get("utorid"),
        remark=data.get("remark"),
    )
    return jsonify(result), 201
