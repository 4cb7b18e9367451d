from __future__ import annotations

from ..extensions import db
from rewards.time_utils import to_utc_z


PROMOTION_AUTOMATIC = "automatic"
PROMOTION_ONE_TIME = "one-time"

PROMOTION_TYPES = (PROMOTION_AUTOMATIC, PROMOTION_ONE_TIME)


# One-time promotions consumed per user
promotion_usages = db.Table(
    "promotion_usages",
    db.Column("promotion_id", db.Integer, db.ForeignKey("promotions.id", ondelete="CASCADE"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Promotion(db.Model):
    """
    Bonus-point promotion applied to purchases.

    Automatic promotions apply to every qualifying purchase. One-time
    promotions are consumable once per user; consumption is tracked through
    ``used_by`` and never reversed.
    """
    __tablename__ = "promotions"
    __table_args__ = (
        db.CheckConstraint("end_time > start_time", name="ck_promotions_window"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")

    promo_type = db.Column(db.String(16), nullable=False, default=PROMOTION_AUTOMATIC)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    min_spending = db.Column(db.Numeric(12, 2), nullable=True)
    rate = db.Column(db.Numeric(8, 4), nullable=True)  # fractional bonus per dollar, e.g. 0.01
    points = db.Column(db.Integer, nullable=True)  # flat bonus

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    used_by = db.relationship(
        "User",
        secondary=promotion_usages,
        lazy="dynamic",
        backref=db.backref("used_promotions", lazy="dynamic"),
    )

    @property
    def is_one_time(self) -> bool:
        return self.promo_type == PROMOTION_ONE_TIME

    def is_used_by(self, user_id: int) -> bool:
        return self.used_by.filter_by(id=user_id).first() is not None

    def to_dict(self, include_start: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.promo_type,
            "endTime": to_utc_z(self.end_time),
            "minSpending": float(self.min_spending) if self.min_spending is not None else None,
            "rate": float(self.rate) if self.rate is not None else None,
            "points": self.points,
        }
        if include_start:
            data["startTime"] = to_utc_z(self.start_time)
        return data
