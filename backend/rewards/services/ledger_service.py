# Overview: Service-layer operations for the points ledger; balance writes and verification.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import InvalidInputError
from ..extensions import db
from ..models import Transaction, User
from .concurrency import guarded_update

"""
Points Ledger Invariants (authoritative)

- Transaction rows are the source of truth; users.points is a cache.
- For every user: points == sum(ledger_delta) over non-suspicious rows.
- Balance writes happen only through apply_balance_delta, inside the same
  DB transaction as the row that justifies them.
- A balance never drops below zero at commit time.
"""


def apply_balance_delta(user_id: int, delta: int) -> None:
    """
    Add ``delta`` to a user's balance as one guarded UPDATE.

    The write only lands if the resulting balance is non-negative, so two
    concurrent debits can never both pass a stale balance check.

    Raises InvalidInputError when the user cannot cover a debit.
    """
    if delta == 0:
        return

    conditions = []
    if delta < 0:
        conditions.append(User.points >= -delta)

    applied = guarded_update(User, user_id, {"points": User.points + delta}, *conditions)
    if not applied:
        raise InvalidInputError("Insufficient points")

    current_app.logger.info("Balance change user_id=%s delta=%s", user_id, delta)


def compute_ledger_balance(user_id: int) -> int:
    """Recompute a user's balance from their transaction history."""
    rows = (
        db.session.query(Transaction)
        .filter(Transaction.user_id == user_id, Transaction.suspicious.is_(False))
        .all()
    )
    return sum(tx.ledger_delta for tx in rows)


@dataclass(frozen=True)
class BalanceMismatch:
    user_id: int
    utorid: str
    stored: int
    computed: int

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "utorid": self.utorid,
            "stored": self.stored,
            "computed": self.computed,
        }


def verify_ledger() -> list[BalanceMismatch]:
    """
    Compare every stored balance with the balance implied by the ledger.

    Read-only; returns one entry per user whose cache has diverged.
    """
    mismatches = []
    for user in db.session.query(User).order_by(User.id).all():
        computed = compute_ledger_balance(user.id)
        if computed != user.points:
            mismatches.append(
                BalanceMismatch(user_id=user.id, utorid=user.utorid, stored=user.points, computed=computed)
            )
    return mismatches
