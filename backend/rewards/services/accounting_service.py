# Overview: Service-layer operations for points accounting; every balance-creating transaction type.

from __future__ import annotations

from typing import Iterable, Optional

from flask import current_app

from ..errors import ForbiddenError, InvalidInputError, NotFoundError
from ..extensions import db
from ..models import Event, Promotion, Transaction, User
from ..models.transactions import (
    TX_ADJUSTMENT,
    TX_EVENT,
    TX_PURCHASE,
    TX_REDEMPTION,
    TX_TRANSFER,
)
from ..roles import Principal, Role
from .concurrency import guarded_update, lock_for_update, run_atomic
from .ledger_service import apply_balance_delta
from .promotion_evaluator import evaluate_promotion, purchase_points, to_decimal
from rewards.time_utils import to_utc_z, utcnow

"""
Points Accounting Invariants (authoritative)

- Each public function is one unit of work: the ledger rows, the balance
  changes, the promotion usages and the event pool increment commit
  together or not at all.
- Validation happens before the first write; a failed call leaves no trace.
- Balances only move through ledger_service.apply_balance_delta.
- A suspicious creator's purchase is recorded in full but credits nothing
  until the reconciler clears it.
"""


def _user_by_utorid(utorid: str, what: str = "User") -> User:
    user = db.session.query(User).filter_by(utorid=utorid).first()
    if not user:
        raise NotFoundError(f"{what} {utorid} not found")
    return user


def _unique_ids(ids: Optional[Iterable[int]]) -> list[int]:
    seen = []
    for value in ids or []:
        if value not in seen:
            seen.append(value)
    return seen


def _clean_remark(remark: Optional[str]) -> str:
    return remark or ""


def create_purchase(
    *,
    utorid: str,
    spent,
    created_by: str,
    promotion_ids: Optional[Iterable[int]] = None,
    remark: Optional[str] = None,
) -> dict:
    """
    Record a purchase and credit the buyer.

    Every listed promotion must be usable for this exact purchase; if any
    one fails, the whole purchase is rejected.
    """
    spent = to_decimal(spent)
    if spent < 0:
        raise InvalidInputError("spent must be non-negative")
    promotion_ids = _unique_ids(promotion_ids)

    def _op():
        buyer = _user_by_utorid(utorid)
        creator = _user_by_utorid(created_by, "Creator")
        now = utcnow()

        promotions = []
        evaluations = []
        for promotion_id in promotion_ids:
            promotion = lock_for_update(
                db.session.query(Promotion).filter_by(id=promotion_id)
            ).first()
            if not promotion:
                raise InvalidInputError(f"Promotion {promotion_id} does not exist")
            evaluation = evaluate_promotion(
                promotion,
                spent=spent,
                used_by_buyer=promotion.is_one_time and promotion.is_used_by(buyer.id),
                now=now,
            )
            if not evaluation.eligible:
                raise InvalidInputError(f"Promotion {promotion_id} cannot be applied: {evaluation.reason}")
            promotions.append(promotion)
            evaluations.append(evaluation)

        earned = purchase_points(spent, evaluations)
        suspicious = bool(creator.suspicious)

        tx = Transaction(
            tx_type=TX_PURCHASE,
            user_id=buyer.id,
            created_by_id=creator.id,
            amount=earned,
            spent=spent,
            suspicious=suspicious,
            remark=_clean_remark(remark),
            created_at=now,
        )
        tx.promotions = promotions
        db.session.add(tx)
        db.session.flush()

        if not suspicious:
            apply_balance_delta(buyer.id, earned)

        for promotion in promotions:
            if promotion.is_one_time:
                promotion.used_by.append(buyer)

        return {
            "id": tx.id,
            "utorid": buyer.utorid,
            "type": TX_PURCHASE,
            "spent": float(spent),
            "earned": 0 if suspicious else earned,
            "remark": tx.remark,
            "promotionIds": [p.id for p in promotions],
            "createdBy": creator.utorid,
            "createdAt": to_utc_z(now),
        }

    result = run_atomic(_op)
    current_app.logger.info(
        "Purchase recorded tx_id=%s utorid=%s earned=%s", result["id"], utorid, result["earned"]
    )
    return result


def create_adjustment(
    *,
    utorid: str,
    amount: int,
    related_id: int,
    created_by: str,
    promotion_ids: Optional[Iterable[int]] = None,
    remark: Optional[str] = None,
) -> dict:
    """
    Correct a user's balance with a signed amount tied to an earlier row.

    Promotions listed here are recorded for audit only; no eligibility rules
    apply and nothing is consumed.
    """
    promotion_ids = _unique_ids(promotion_ids)

    def _op():
        user = _user_by_utorid(utorid)
        creator = _user_by_utorid(created_by, "Creator")
        related = db.session.get(Transaction, related_id)
        if not related:
            raise NotFoundError(f"Transaction {related_id} not found")

        promotions = []
        for promotion_id in promotion_ids:
            promotion = db.session.get(Promotion, promotion_id)
            if not promotion:
                raise InvalidInputError(f"Promotion {promotion_id} does not exist")
            promotions.append(promotion)

        tx = Transaction(
            tx_type=TX_ADJUSTMENT,
            user_id=user.id,
            created_by_id=creator.id,
            amount=int(amount),
            related_transaction_id=related.id,
            suspicious=False,
            remark=_clean_remark(remark),
        )
        tx.promotions = promotions
        db.session.add(tx)
        db.session.flush()

        apply_balance_delta(user.id, tx.amount)
        return tx.to_dict()

    result = run_atomic(_op)
    current_app.logger.info(
        "Adjustment recorded tx_id=%s utorid=%s amount=%s", result["id"], utorid, result["amount"]
    )
    return result


def create_transfer(
    *,
    sender_utorid: str,
    recipient_id: int,
    amount: int,
    remark: Optional[str] = None,
) -> dict:
    """
    Move points between two users as a pair of mirrored rows.

    The sender's row carries -amount, the recipient's +amount; each points
    at the other party and both are created by the sender.
    """
    if amount <= 0:
        raise InvalidInputError("Transfer amount must be positive")

    def _op():
        sender = _user_by_utorid(sender_utorid, "Sender")
        if not sender.verified:
            raise ForbiddenError("Sender must be verified to transfer points")

        recipient = db.session.get(User, recipient_id)
        if not recipient:
            raise NotFoundError(f"Recipient {recipient_id} not found")
        if recipient.id == sender.id:
            raise InvalidInputError("Cannot transfer points to yourself")
        if sender.points < amount:
            raise InvalidInputError("Insufficient points")

        now = utcnow()
        note = _clean_remark(remark)
        sent_row = Transaction(
            tx_type=TX_TRANSFER,
            user_id=sender.id,
            created_by_id=sender.id,
            amount=-amount,
            counterpart_user_id=recipient.id,
            remark=note,
            created_at=now,
        )
        received_row = Transaction(
            tx_type=TX_TRANSFER,
            user_id=recipient.id,
            created_by_id=sender.id,
            amount=amount,
            counterpart_user_id=sender.id,
            remark=note,
            created_at=now,
        )
        db.session.add_all([sent_row, received_row])
        db.session.flush()

        # Debit first: the guard rejects a sender whose balance moved since the check above
        apply_balance_delta(sender.id, -amount)
        apply_balance_delta(recipient.id, amount)

        return {
            "id": sent_row.id,
            "sender": sender.utorid,
            "recipient": recipient.utorid,
            "type": TX_TRANSFER,
            "sent": amount,
            "remark": note,
            "createdBy": sender.utorid,
            "createdAt": to_utc_z(now),
        }

    result = run_atomic(_op)
    current_app.logger.info(
        "Transfer recorded tx_id=%s sender=%s recipient=%s amount=%s",
        result["id"], result["sender"], result["recipient"], amount,
    )
    return result


def create_redemption_request(*, utorid: str, amount: int, remark: Optional[str] = None) -> dict:
    """
    Open a pending redemption. Nothing is debited until a cashier processes it.
    """
    if amount < 0:
        raise InvalidInputError("Redemption amount must be non-negative")

    def _op():
        user = _user_by_utorid(utorid)
        if not user.verified:
            raise ForbiddenError("User must be verified to redeem points")
        if user.points < amount:
            raise InvalidInputError("Insufficient points")

        tx = Transaction(
            tx_type=TX_REDEMPTION,
            user_id=user.id,
            created_by_id=user.id,
            amount=amount,
            remark=_clean_remark(remark),
        )
        db.session.add(tx)
        db.session.flush()

        return {
            "id": tx.id,
            "utorid": user.utorid,
            "type": TX_REDEMPTION,
            "processedBy": None,
            "amount": amount,
            "remark": tx.remark,
            "createdBy": user.utorid,
            "createdAt": to_utc_z(tx.created_at),
        }

    result = run_atomic(_op)
    current_app.logger.info("Redemption requested tx_id=%s utorid=%s amount=%s", result["id"], utorid, amount)
    return result


def _award_row(event: Event, guest: User, creator: User, amount: int, remark: str) -> Transaction:
    return Transaction(
        tx_type=TX_EVENT,
        user_id=guest.id,
        created_by_id=creator.id,
        amount=amount,
        event_id=event.id,
        remark=remark,
    )


def _award_response(tx: Transaction, guest: User, creator: User) -> dict:
    return {
        "id": tx.id,
        "recipient": guest.utorid,
        "awarded": tx.amount,
        "type": TX_EVENT,
        "relatedId": tx.event_id,
        "remark": tx.remark,
        "createdBy": creator.utorid,
    }


def create_event_award(
    *,
    event_id: int,
    amount: int,
    actor: Principal,
    utorid: Optional[str] = None,
    remark: Optional[str] = None,
):
    """
    Award event points to one guest, or to every guest when ``utorid`` is None.

    Returns a single response dict in single-guest mode and a list in
    all-guests mode. The pool increment is one guarded UPDATE covering the
    whole batch, so concurrent awards can never push pointsAwarded past
    pointsAllocated.
    """
    if amount <= 0:
        raise InvalidInputError("Award amount must be positive")

    def _op():
        event = lock_for_update(db.session.query(Event).filter_by(id=event_id)).first()
        if not event:
            raise NotFoundError(f"Event {event_id} not found")
        if actor.role < Role.MANAGER and not event.has_organizer(actor.id):
            raise ForbiddenError("Only managers or event organizers can award points")

        creator = db.session.get(User, actor.id)
        if not creator:
            raise NotFoundError(f"Creator {actor.utorid} not found")

        if utorid is not None:
            guest = next((g for g in event.guests if g.utorid == utorid), None)
            if guest is None:
                raise InvalidInputError(f"User {utorid} is not on the guest list")
            recipients = [guest]
        else:
            recipients = list(event.guests)

        total = amount * len(recipients)
        if total > event.points_remain:
            raise InvalidInputError("Not enough points remaining for this event")

        if total:
            reserved = guarded_update(
                Event,
                event.id,
                {"points_awarded": Event.points_awarded + total},
                Event.points_awarded + total <= Event.points_allocated,
            )
            if not reserved:
                raise InvalidInputError("Not enough points remaining for this event")

        note = _clean_remark(remark)
        rows = [_award_row(event, guest, creator, amount, note) for guest in recipients]
        db.session.add_all(rows)
        db.session.flush()

        for guest in recipients:
            apply_balance_delta(guest.id, amount)

        responses = [_award_response(tx, guest, creator) for tx, guest in zip(rows, recipients)]
        return responses[0] if utorid is not None else responses

    result = run_atomic(_op)
    awarded = [result] if isinstance(result, dict) else result
    current_app.logger.info(
        "Event award event_id=%s guests=%s amount=%s", event_id, len(awarded), amount
    )
    return result
