# Overview: Service-layer operations for the promotion catalog; role-shaped views and edits.

from __future__ import annotations

from typing import Optional

from flask import current_app
from sqlalchemy import or_, select

from ..errors import ForbiddenError, InvalidInputError, NotFoundError
from ..extensions import db
from ..models import Promotion, User, promotion_usages
from ..models.promotions import PROMOTION_AUTOMATIC, PROMOTION_ONE_TIME
from ..roles import Principal
from .concurrency import run_atomic
from .pagination import paginate, parse_sort
from .promotion_evaluator import evaluate_promotion
from rewards.time_utils import to_utc_z, utcnow


SORT_COLUMNS = {
    "id": Promotion.id,
    "name": Promotion.name,
    "startTime": Promotion.start_time,
    "endTime": Promotion.end_time,
}

# Editable only until the promotion starts
FIELDS_LOCKED_AFTER_START = ("name", "description", "type", "startTime", "minSpending", "rate", "points")

COLUMN_BY_FIELD = {
    "name": "name",
    "description": "description",
    "type": "promo_type",
    "startTime": "start_time",
    "endTime": "end_time",
    "minSpending": "min_spending",
    "rate": "rate",
    "points": "points",
}


def _get_or_404(promotion_id: int) -> Promotion:
    promotion = db.session.get(Promotion, promotion_id)
    if not promotion:
        raise NotFoundError("Promotion not found")
    return promotion


def create_promotion(data: dict) -> dict:
    now = utcnow()
    start, end = data["startTime"], data["endTime"]
    if start < now:
        raise InvalidInputError("Start time must not be in the past")
    if end <= start:
        raise InvalidInputError("End time must be after start time")

    def _op():
        promotion = Promotion(
            name=data["name"],
            description=data.get("description") or "",
            promo_type=data["type"],
            start_time=start,
            end_time=end,
            min_spending=data.get("minSpending"),
            rate=data.get("rate"),
            points=data.get("points") or 0,
        )
        db.session.add(promotion)
        db.session.flush()
        return promotion.to_dict()

    result = run_atomic(_op)
    current_app.logger.info("Promotion created id=%s type=%s", result["id"], result["type"])
    return result


def list_promotions(
    principal: Principal,
    *,
    name: Optional[str] = None,
    promo_type: Optional[str] = None,
    started: Optional[bool] = None,
    ended: Optional[bool] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    sort: Optional[str] = None,
) -> dict:
    """
    Managers see every promotion and may filter on started/ended.
    Everyone else sees only what they could use right now: active
    promotions, minus one-time promotions they already consumed.
    """
    now = utcnow()
    query = db.session.query(Promotion)
    if name:
        query = query.filter(Promotion.name.contains(name))
    if promo_type:
        query = query.filter(Promotion.promo_type == promo_type)

    if principal.is_manager:
        if started is not None and ended is not None:
            raise InvalidInputError("Cannot specify both started and ended")
        if started is not None:
            query = query.filter(Promotion.start_time <= now if started else Promotion.start_time > now)
        if ended is not None:
            query = query.filter(Promotion.end_time <= now if ended else Promotion.end_time > now)
    else:
        used = select(promotion_usages.c.promotion_id).where(promotion_usages.c.user_id == principal.id)
        query = query.filter(
            Promotion.start_time <= now,
            Promotion.end_time > now,
            or_(Promotion.promo_type == PROMOTION_AUTOMATIC, Promotion.id.not_in(used)),
        )

    query = query.order_by(parse_sort(sort, SORT_COLUMNS, ("id", "asc")))
    total, rows = paginate(query, page, limit)

    results = []
    for promotion in rows:
        item = promotion.to_dict(include_start=principal.is_manager)
        item.pop("description", None)
        results.append(item)
    return {"count": total, "results": results}


def get_promotion(promotion_id: int, principal: Principal) -> dict:
    promotion = _get_or_404(promotion_id)
    if principal.is_manager:
        return promotion.to_dict()

    evaluation = evaluate_promotion(
        promotion,
        used_by_buyer=promotion.is_one_time and promotion.is_used_by(principal.id),
    )
    if not evaluation.eligible:
        raise NotFoundError(f"Promotion {evaluation.reason}")
    return promotion.to_dict(include_start=False)


def update_promotion(promotion_id: int, data: dict) -> dict:
    """
    Apply a partial update. Once a promotion has started only endTime may
    change, and once it has ended nothing may.
    """
    def _op():
        promotion = _get_or_404(promotion_id)
        now = utcnow()

        if promotion.start_time <= now:
            for field in FIELDS_LOCKED_AFTER_START:
                if data.get(field) is not None:
                    raise InvalidInputError(f"Cannot update {field} after the promotion has started")
        if promotion.end_time <= now and data.get("endTime") is not None:
            raise InvalidInputError("Cannot update end time after the promotion has ended")

        new_start = data.get("startTime") or promotion.start_time
        new_end = data.get("endTime") or promotion.end_time
        if data.get("startTime") is not None and new_start < now:
            raise InvalidInputError("Start time must not be in the past")
        if data.get("endTime") is not None and new_end < now:
            raise InvalidInputError("End time must not be in the past")
        if new_end <= new_start:
            raise InvalidInputError("End time must be after start time")

        for field, value in data.items():
            if value is not None:
                setattr(promotion, COLUMN_BY_FIELD[field], value)
        db.session.flush()

        full = promotion.to_dict()
        response = {"id": promotion.id, "name": promotion.name, "type": promotion.promo_type}
        for field in data:
            if field == "startTime":
                response[field] = to_utc_z(promotion.start_time)
            elif field in full:
                response[field] = full[field]
        return response

    result = run_atomic(_op)
    current_app.logger.info("Promotion updated id=%s fields=%s", promotion_id, sorted(data))
    return result


def delete_promotion(promotion_id: int) -> None:
    def _op():
        promotion = _get_or_404(promotion_id)
        if promotion.start_time <= utcnow():
            raise ForbiddenError("Failed to delete: promotion already started")
        db.session.delete(promotion)

    run_atomic(_op)
    current_app.logger.info("Promotion deleted id=%s", promotion_id)


def available_one_time_promotions(user: User) -> list[dict]:
    """Active one-time promotions the user has not consumed yet."""
    now = utcnow()
    used = select(promotion_usages.c.promotion_id).where(promotion_usages.c.user_id == user.id)
    rows = (
        db.session.query(Promotion)
        .filter(
            Promotion.promo_type == PROMOTION_ONE_TIME,
            Promotion.start_time <= now,
            Promotion.end_time > now,
            Promotion.id.not_in(used),
        )
        .order_by(Promotion.id)
        .all()
    )
    summaries = []
    for promotion in rows:
        data = promotion.to_dict(include_start=False)
        summaries.append({key: data[key] for key in ("id", "name", "minSpending", "rate", "points")})
    return summaries
