# Overview: Service-layer operations for the suspicious flag; keeps balances consistent with it.

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import Transaction
from .concurrency import guarded_update, run_atomic
from .ledger_service import apply_balance_delta


def set_suspicious(transaction_id: int, suspicious: bool) -> dict:
    """
    Flip a transaction's suspicious flag and move the owner's balance with it.

    - unchanged value: no-op, balance untouched
    - false -> true: the row's ledger delta is withdrawn
    - true -> false: the row's ledger delta is restored

    The flag is flipped with a compare-and-set on its old value, so the
    balance moves once even if two reviewers submit the same change.
    """
    suspicious = bool(suspicious)

    def _op():
        tx = db.session.get(Transaction, transaction_id)
        if not tx:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if tx.suspicious == suspicious:
            return tx.to_dict(), 0

        flipped = guarded_update(
            Transaction,
            tx.id,
            {"suspicious": suspicious},
            Transaction.suspicious == (not suspicious),
        )
        if not flipped:
            # Someone else already applied this change
            db.session.refresh(tx)
            return tx.to_dict(), 0

        delta = -tx.ledger_delta if suspicious else tx.ledger_delta
        apply_balance_delta(tx.user_id, delta)
        return tx.to_dict(), delta

    data, delta = run_atomic(_op)
    if delta:
        current_app.logger.info(
            "Suspicious flag set tx_id=%s suspicious=%s delta=%s", transaction_id, suspicious, delta
        )
    return data
