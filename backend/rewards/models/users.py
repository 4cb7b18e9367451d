from __future__ import annotations

from ..extensions import db
from ..roles import Role
from rewards.time_utils import to_utc_z


class User(db.Model):
    """
    Loyalty account holder.

    ``points`` is a materialized balance. Only the accounting services write
    it, and always through a guarded increment in the same DB transaction as
    the ledger row that justifies the change.

    ``suspicious`` only matters for cashiers: purchases they ring up are
    stored as suspicious and withhold the buyer's credit until reviewed.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("points >= 0", name="ck_users_points_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    utorid = db.Column(db.String(8), nullable=False, unique=True, index=True)
    name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    birthday = db.Column(db.Date, nullable=True)

    role = db.Column(db.String(16), nullable=False, default=Role.REGULAR.label)
    points = db.Column(db.Integer, nullable=False, default=0)

    verified = db.Column(db.Boolean, nullable=False, default=False)
    activated = db.Column(db.Boolean, nullable=False, default=False)
    suspicious = db.Column(db.Boolean, nullable=False, default=False)

    # Bcrypt hashed password; empty until the account is activated
    password_hash = db.Column(db.String(255), nullable=False, default="")

    reset_token = db.Column(db.String(64), nullable=True, unique=True, index=True)
    reset_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    avatar_url = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def tier(self) -> Role:
        return Role.parse(self.role)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "utorid": self.utorid,
            "name": self.name,
            "email": self.email,
            "birthday": self.birthday.isoformat() if self.birthday else None,
            "role": self.role,
            "points": self.points,
            "createdAt": to_utc_z(self.created_at),
            "lastLogin": to_utc_z(self.last_login) if self.last_login else None,
            "verified": self.verified,
            "avatarUrl": self.avatar_url,
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "utorid": self.utorid, "name": self.name}
