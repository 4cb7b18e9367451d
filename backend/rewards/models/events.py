from __future__ import annotations

from ..extensions import db
from rewards.time_utils import to_utc_z


event_organizers = db.Table(
    "event_organizers",
    db.Column("event_id", db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

event_guests = db.Table(
    "event_guests",
    db.Column("event_id", db.Integer, db.ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Event(db.Model):
    """
    Campus event with a points pool.

    INVARIANTS:
    - 0 <= points_awarded <= points_allocated (enforced by guarded UPDATE
      in the award path and by a CHECK constraint here)
    - guest count <= capacity when capacity is set
    - published only ever flips false -> true
    """
    __tablename__ = "events"
    __table_args__ = (
        db.CheckConstraint("points_awarded >= 0", name="ck_events_awarded_non_negative"),
        db.CheckConstraint("points_awarded <= points_allocated", name="ck_events_awarded_within_pool"),
        db.CheckConstraint("end_time > start_time", name="ck_events_window"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    location = db.Column(db.String(255), nullable=False, default="")

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    capacity = db.Column(db.Integer, nullable=True)
    points_allocated = db.Column(db.Integer, nullable=False, default=0)
    points_awarded = db.Column(db.Integer, nullable=False, default=0)

    published = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organizers = db.relationship(
        "User",
        secondary=event_organizers,
        lazy="selectin",
        order_by="User.id",
        backref=db.backref("organized_events", lazy="dynamic"),
    )
    guests = db.relationship(
        "User",
        secondary=event_guests,
        lazy="selectin",
        order_by="User.id",
        backref=db.backref("attending_events", lazy="dynamic"),
    )

    @property
    def points_remain(self) -> int:
        return self.points_allocated - self.points_awarded

    @property
    def num_guests(self) -> int:
        return len(self.guests)

    @property
    def is_full(self) -> bool:
        return self.capacity is not None and self.num_guests >= self.capacity

    def has_organizer(self, user_id: int) -> bool:
        return any(u.id == user_id for u in self.organizers)

    def has_guest(self, user_id: int) -> bool:
        return any(u.id == user_id for u in self.guests)

    def to_dict(self, *, include_private: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "location": self.location,
            "startTime": to_utc_z(self.start_time),
            "endTime": to_utc_z(self.end_time),
            "capacity": self.capacity,
            "organizers": [u.to_summary() for u in self.organizers],
        }
        if include_private:
            data["pointsRemain"] = self.points_remain
            data["pointsAwarded"] = self.points_awarded
            data["published"] = self.published
            data["guests"] = [u.to_summary() for u in self.guests]
        else:
            data["numGuests"] = self.num_guests
        return data
