# Overview: Service-layer operations for redemption processing.

from __future__ import annotations

from flask import current_app

from ..errors import InvalidInputError, NotFoundError
from ..extensions import db
from ..models import Transaction, User
from ..models.transactions import TX_REDEMPTION
from .concurrency import guarded_update, lock_for_update, run_atomic
from .ledger_service import apply_balance_delta
from rewards.time_utils import to_utc_z


def process_redemption(transaction_id: int, cashier_utorid: str) -> dict:
    """
    Settle a pending redemption: record the cashier and debit the owner.

    Pending -> processed is one-way. The processor is claimed with a guarded
    UPDATE (``processed_by_id IS NULL``) so two cashiers racing on the same
    request cannot both debit it. A redemption already flagged suspicious is
    marked processed without a debit; clearing the flag later applies it.
    """
    def _op():
        tx = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
        if not tx:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        if tx.tx_type != TX_REDEMPTION:
            raise InvalidInputError("Transaction is not a redemption")
        if tx.processed_by_id is not None:
            raise InvalidInputError("Redemption already processed")

        cashier = db.session.query(User).filter_by(utorid=cashier_utorid).first()
        if not cashier:
            raise InvalidInputError(f"Processing user {cashier_utorid} not found")

        claimed = guarded_update(
            Transaction,
            tx.id,
            {"processed_by_id": cashier.id},
            Transaction.processed_by_id.is_(None),
        )
        if not claimed:
            raise InvalidInputError("Redemption already processed")

        if not tx.suspicious:
            apply_balance_delta(tx.user_id, -tx.amount)

        return {
            "id": tx.id,
            "utorid": tx.owner.utorid,
            "type": TX_REDEMPTION,
            "processedBy": cashier.utorid,
            "redeemed": tx.amount,
            "remark": tx.remark or "",
            "createdBy": tx.creator.utorid,
            "createdAt": to_utc_z(tx.created_at),
        }

    result = run_atomic(_op)
    current_app.logger.info(
        "Redemption processed tx_id=%s utorid=%s redeemed=%s by=%s",
        result["id"], result["utorid"], result["redeemed"], cashier_utorid,
    )
    return result
