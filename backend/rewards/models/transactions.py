from __future__ import annotations

from ..extensions import db
from rewards.time_utils import to_utc_z, utcnow


TX_PURCHASE = "purchase"
TX_ADJUSTMENT = "adjustment"
TX_TRANSFER = "transfer"
TX_REDEMPTION = "redemption"
TX_EVENT = "event"

TRANSACTION_TYPES = (TX_PURCHASE, TX_ADJUSTMENT, TX_TRANSFER, TX_REDEMPTION, TX_EVENT)

# The wire format exposes one "relatedId"; storage keeps one typed,
# foreign-keyed column per meaning. Purchases have no related entity.
RELATED_COLUMN_BY_TYPE = {
    TX_ADJUSTMENT: "related_transaction_id",
    TX_TRANSFER: "counterpart_user_id",
    TX_REDEMPTION: "processed_by_id",
    TX_EVENT: "event_id",
}


transaction_promotions = db.Table(
    "transaction_promotions",
    db.Column("transaction_id", db.Integer, db.ForeignKey("transactions.id", ondelete="CASCADE"), primary_key=True),
    db.Column("promotion_id", db.Integer, db.ForeignKey("promotions.id", ondelete="CASCADE"), primary_key=True),
)


class Transaction(db.Model):
    """
    Append-only points ledger row.

    AMOUNT SEMANTICS:
    - purchase: points earned (full computed amount, even when suspicious)
    - adjustment: signed correction
    - transfer: -n on the sender's row, +n on the recipient's mirrored row
    - redemption: positive n, debited only once processed
    - event: points awarded

    MUTABLE FIELDS: ``suspicious`` (via the reconciler) and
    ``processed_by_id`` (set exactly once by the redemption processor).
    Everything else is written at insert time and never changed.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_user_type", "user_id", "tx_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tx_type = db.Column(db.String(16), nullable=False, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)
    spent = db.Column(db.Numeric(12, 2), nullable=True)

    related_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)
    counterpart_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=True, index=True)

    suspicious = db.Column(db.Boolean, nullable=False, default=False, index=True)
    remark = db.Column(db.Text, nullable=False, default="")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    owner = db.relationship("User", foreign_keys=[user_id], backref=db.backref("transactions", lazy="dynamic"))
    creator = db.relationship("User", foreign_keys=[created_by_id])
    counterpart = db.relationship("User", foreign_keys=[counterpart_user_id])
    processed_by = db.relationship("User", foreign_keys=[processed_by_id])
    related_transaction = db.relationship("Transaction", remote_side=[id])
    event = db.relationship("Event", backref=db.backref("transactions", lazy="dynamic"))

    promotions = db.relationship(
        "Promotion",
        secondary=transaction_promotions,
        lazy="selectin",
        order_by="Promotion.id",
    )

    @property
    def related_id(self) -> int | None:
        column = RELATED_COLUMN_BY_TYPE.get(self.tx_type)
        return getattr(self, column) if column else None

    @property
    def is_processed(self) -> bool:
        return self.tx_type == TX_REDEMPTION and self.processed_by_id is not None

    @property
    def ledger_delta(self) -> int:
        """Change this row makes to the owner's balance while not suspicious."""
        if self.tx_type == TX_REDEMPTION:
            return -self.amount if self.processed_by_id is not None else 0
        return self.amount

    @property
    def promotion_ids(self) -> list[int]:
        return [p.id for p in self.promotions]

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "utorid": self.owner.utorid,
            "amount": self.amount,
            "type": self.tx_type,
            "promotionIds": self.promotion_ids,
            "suspicious": self.suspicious,
            "remark": self.remark or "",
            "createdBy": self.creator.utorid,
            "createdAt": to_utc_z(self.created_at),
        }

        if self.tx_type == TX_PURCHASE:
            data["spent"] = float(self.spent) if self.spent is not None else None
        else:
            if self.related_id is not None:
                data["relatedId"] = self.related_id
            if self.tx_type == TX_REDEMPTION:
                data["redeemed"] = abs(self.amount)

        return data
