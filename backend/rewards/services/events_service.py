# Overview: Service-layer operations for events; organizers, guests and lifecycle rules.

from __future__ import annotations

from typing import Optional

from flask import current_app
from sqlalchemy import func, insert, literal, or_, select

from ..errors import ForbiddenError, GoneError, InvalidInputError, NotFoundError
from ..extensions import db
from ..models import Event, User, event_guests
from ..roles import Principal
from .concurrency import lock_for_update, run_atomic
from .pagination import paginate, parse_sort
from rewards.time_utils import to_utc_z, utcnow


SORT_COLUMNS = {
    "id": Event.id,
    "name": Event.name,
    "startTime": Event.start_time,
    "endTime": Event.end_time,
}

# Editable only until the event starts
FIELDS_LOCKED_AFTER_START = ("name", "description", "location", "startTime", "capacity")
MANAGER_ONLY_FIELDS = ("points", "published")

COLUMN_BY_FIELD = {
    "name": "name",
    "description": "description",
    "location": "location",
    "startTime": "start_time",
    "endTime": "end_time",
    "capacity": "capacity",
    "points": "points_allocated",
    "published": "published",
}


def _get_or_404(event_id: int) -> Event:
    event = db.session.get(Event, event_id)
    if not event:
        raise NotFoundError("Event not found")
    return event


def _lock_or_404(event_id: int) -> Event:
    event = lock_for_update(db.session.query(Event).filter_by(id=event_id)).first()
    if not event:
        raise NotFoundError("Event not found")
    return event


def _guest_count(event_id: int):
    return (
        select(func.count())
        .select_from(event_guests)
        .where(event_guests.c.event_id == event_id)
        .correlate(None)
        .scalar_subquery()
    )


def _insert_guest(event: Event, user: User) -> None:
    """
    Seat a guest with one INSERT ... SELECT that only yields a row while the
    event still has room; the guest count is read at write time.

    Raises GoneError when the event is full at write time.
    """
    seat = select(Event.id, literal(user.id)).where(
        Event.id == event.id,
        or_(Event.capacity.is_(None), _guest_count(event.id) < Event.capacity),
    )
    result = db.session.execute(insert(event_guests).from_select(["event_id", "user_id"], seat))
    if result.rowcount != 1:
        raise GoneError("Event is full")
    db.session.expire(event, ["guests"])


def _user_by_utorid(utorid: str) -> User:
    user = db.session.query(User).filter_by(utorid=utorid).first()
    if not user:
        raise NotFoundError(f"User {utorid} not found")
    return user


def _can_manage(event: Event, principal: Principal) -> bool:
    return principal.is_manager or event.has_organizer(principal.id)


def create_event(data: dict, creator_id: int) -> dict:
    """Create an event; the creating manager becomes its first organizer."""
    now = utcnow()
    start, end = data["startTime"], data["endTime"]
    if start < now:
        raise InvalidInputError("Start time must be in the future")
    if end <= start:
        raise InvalidInputError("End time must be after start time")

    def _op():
        creator = db.session.get(User, creator_id)
        if not creator:
            raise NotFoundError("Organizer not found")
        event = Event(
            name=data["name"],
            description=data["description"],
            location=data["location"],
            start_time=start,
            end_time=end,
            capacity=data.get("capacity"),
            points_allocated=data["points"],
            points_awarded=0,
            published=False,
        )
        event.organizers.append(creator)
        db.session.add(event)
        db.session.flush()
        return event.to_dict(include_private=True)

    result = run_atomic(_op)
    current_app.logger.info("Event created id=%s points=%s", result["id"], data["points"])
    return result


def update_event(event_id: int, data: dict, principal: Principal) -> dict:
    """
    Partial update. Organizers may edit the descriptive fields; only managers
    may touch points or publish. Returns id, name and location plus whatever
    was changed.
    """
    def _op():
        event = _get_or_404(event_id)
        if not _can_manage(event, principal):
            raise ForbiddenError("Only managers or event organizers can update this event")
        if not principal.is_manager and any(data.get(f) is not None for f in MANAGER_ONLY_FIELDS):
            raise ForbiddenError("Only managers can update points and published fields")
        if data.get("published") is False:
            raise InvalidInputError("Published field can only be set to true")

        now = utcnow()
        if event.start_time < now:
            for field in FIELDS_LOCKED_AFTER_START:
                if data.get(field) is not None:
                    raise InvalidInputError(f"Cannot update {field} after the event has started")
        if event.end_time < now and data.get("endTime") is not None:
            raise InvalidInputError("Cannot update end time after the event has ended")

        if data.get("startTime") is not None and data["startTime"] < now:
            raise InvalidInputError("Start time must be in the future")
        if data.get("endTime") is not None and data["endTime"] < now:
            raise InvalidInputError("End time must be in the future")
        new_start = data.get("startTime") or event.start_time
        new_end = data.get("endTime") or event.end_time
        if new_end <= new_start:
            raise InvalidInputError("End time must be after start time")

        if data.get("capacity") is not None and event.num_guests > data["capacity"]:
            raise InvalidInputError(
                f"Guest count ({event.num_guests}) exceeds new capacity ({data['capacity']})"
            )
        if data.get("points") is not None and data["points"] < event.points_awarded:
            raise InvalidInputError("Cannot reduce points below already awarded amount")

        for field, value in data.items():
            if value is not None:
                setattr(event, COLUMN_BY_FIELD[field], value)
        db.session.flush()

        response = {"id": event.id, "name": event.name, "location": event.location}
        if "description" in data:
            response["description"] = event.description
        if "startTime" in data:
            response["startTime"] = to_utc_z(event.start_time)
        if "endTime" in data:
            response["endTime"] = to_utc_z(event.end_time)
        if "capacity" in data:
            response["capacity"] = event.capacity
        if "points" in data:
            response["points"] = event.points_allocated
            response["pointsRemain"] = event.points_remain
        if "published" in data:
            response["published"] = event.published
        return response

    result = run_atomic(_op)
    current_app.logger.info("Event updated id=%s fields=%s", event_id, sorted(data))
    return result


def delete_event(event_id: int) -> None:
    def _op():
        event = _get_or_404(event_id)
        if event.published:
            raise InvalidInputError("Cannot delete a published event")
        if event.points_awarded > 0:
            raise InvalidInputError("Cannot delete an event that has awarded points")
        db.session.delete(event)

    run_atomic(_op)
    current_app.logger.info("Event deleted id=%s", event_id)


def list_events(
    principal: Principal,
    *,
    name: Optional[str] = None,
    location: Optional[str] = None,
    started: Optional[bool] = None,
    ended: Optional[bool] = None,
    show_full: bool = False,
    published: Optional[bool] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    sort: Optional[str] = None,
) -> dict:
    """
    Non-managers only ever see published events. Full events are hidden
    unless ``show_full`` is set.
    """
    if started is not None and ended is not None:
        raise InvalidInputError("Cannot specify both started and ended")

    now = utcnow()
    query = db.session.query(Event)
    if name:
        query = query.filter(Event.name.contains(name))
    if location:
        query = query.filter(Event.location.contains(location))
    if started is not None:
        query = query.filter(Event.start_time <= now if started else Event.start_time > now)
    if ended is not None:
        query = query.filter(Event.end_time <= now if ended else Event.end_time > now)

    if not principal.is_manager:
        query = query.filter(Event.published.is_(True))
    elif published is not None:
        query = query.filter(Event.published == published)

    if not show_full:
        guest_count = (
            select(func.count())
            .select_from(event_guests)
            .where(event_guests.c.event_id == Event.id)
            .scalar_subquery()
        )
        query = query.filter(or_(Event.capacity.is_(None), guest_count < Event.capacity))

    query = query.order_by(parse_sort(sort, SORT_COLUMNS, ("id", "asc")))
    total, rows = paginate(query, page, limit)

    results = []
    for event in rows:
        item = {
            "id": event.id,
            "name": event.name,
            "location": event.location,
            "startTime": to_utc_z(event.start_time),
            "endTime": to_utc_z(event.end_time),
            "capacity": event.capacity,
            "numGuests": event.num_guests,
        }
        if principal.is_manager:
            item["pointsRemain"] = event.points_remain
            item["pointsAwarded"] = event.points_awarded
            item["published"] = event.published
        results.append(item)
    return {"count": total, "results": results}


def get_event(event_id: int, principal: Principal) -> dict:
    event = _get_or_404(event_id)
    privileged = _can_manage(event, principal)
    if not privileged and not event.published:
        raise NotFoundError("Event not found")
    return event.to_dict(include_private=privileged)


def add_organizer(event_id: int, utorid: str) -> dict:
    def _op():
        event = _get_or_404(event_id)
        if event.end_time <= utcnow():
            raise GoneError("Event has ended")
        user = _user_by_utorid(utorid)
        if event.has_guest(user.id):
            raise InvalidInputError("User is registered as a guest; remove them as guest first")
        if not event.has_organizer(user.id):
            event.organizers.append(user)
        db.session.flush()
        return {
            "id": event.id,
            "name": event.name,
            "location": event.location,
            "organizers": [u.to_summary() for u in event.organizers],
        }

    result = run_atomic(_op)
    current_app.logger.info("Organizer added event_id=%s utorid=%s", event_id, utorid)
    return result


def remove_organizer(event_id: int, user_id: int) -> None:
    def _op():
        event = _get_or_404(event_id)
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        if event.has_organizer(user.id):
            event.organizers.remove(user)

    run_atomic(_op)
    current_app.logger.info("Organizer removed event_id=%s user_id=%s", event_id, user_id)


def _guest_added_response(event: Event, user: User) -> dict:
    return {
        "id": event.id,
        "name": event.name,
        "location": event.location,
        "guestAdded": user.to_summary(),
        "numGuests": event.num_guests,
    }


def add_guest(event_id: int, utorid: str, principal: Principal) -> dict:
    def _op():
        event = _lock_or_404(event_id)
        if not _can_manage(event, principal):
            raise ForbiddenError("Only managers or event organizers can add guests")
        if not principal.is_manager and not event.published:
            raise NotFoundError("Event not visible to organizer")
        if event.end_time <= utcnow():
            raise GoneError("Event has ended")
        if event.is_full:
            raise GoneError("Event is full")
        user = _user_by_utorid(utorid)
        if event.has_organizer(user.id):
            raise InvalidInputError("User is registered as an organizer; remove them as organizer first")
        if not event.has_guest(user.id):
            _insert_guest(event, user)
        return _guest_added_response(event, user)

    result = run_atomic(_op)
    current_app.logger.info("Guest added event_id=%s utorid=%s", event_id, utorid)
    return result


def remove_guest(event_id: int, user_id: int) -> None:
    def _op():
        event = _get_or_404(event_id)
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        if event.has_guest(user.id):
            event.guests.remove(user)

    run_atomic(_op)
    current_app.logger.info("Guest removed event_id=%s user_id=%s", event_id, user_id)


def add_guest_me(event_id: int, principal: Principal) -> dict:
    def _op():
        event = _lock_or_404(event_id)
        if not event.published and not principal.is_manager:
            raise NotFoundError("Event not found")
        if event.has_guest(principal.id):
            raise InvalidInputError("User is already on the guest list")
        if event.has_organizer(principal.id):
            raise InvalidInputError("User is registered as an organizer to the event")
        if event.end_time <= utcnow():
            raise GoneError("Event has ended")
        if event.is_full:
            raise GoneError("Event is full")
        user = db.session.get(User, principal.id)
        _insert_guest(event, user)
        return _guest_added_response(event, user)

    result = run_atomic(_op)
    current_app.logger.info("RSVP event_id=%s utorid=%s", event_id, principal.utorid)
    return result


def remove_guest_me(event_id: int, principal: Principal) -> None:
    def _op():
        event = _get_or_404(event_id)
        if not event.has_guest(principal.id):
            raise NotFoundError("User did not RSVP to this event")
        if event.end_time <= utcnow():
            raise GoneError("Event has ended")
        user = db.session.get(User, principal.id)
        event.guests.remove(user)

    run_atomic(_op)
    current_app.logger.info("RSVP withdrawn event_id=%s utorid=%s", event_id, principal.utorid)
