"""
Guarded writes under stale reads.

Each test commits a change the way a second request would, then leaves the
session holding the value it read before that change. The operation under
test passes its early checks on the stale value and must be stopped by the
guarded UPDATE instead of overwriting the other request's work.
"""

import pytest
from sqlalchemy import update
from sqlalchemy.orm.attributes import set_committed_value

from rewards.errors import InvalidInputError
from rewards.models import Event, Transaction, User
from rewards.roles import Role
from rewards.services import accounting_service
from rewards.services.reconciliation_service import set_suspicious
from rewards.services.redemption_service import process_redemption

from conftest import principal_for


def commit_elsewhere(db_session, instance, **values):
    """Commit ``values`` to the row behind the session's back; ``instance`` keeps its old reads."""
    model = type(instance)
    stale = {key: getattr(instance, key) for key in values}
    db_session.execute(
        update(model)
        .where(model.id == instance.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db_session.commit()
    db_session.refresh(instance)
    for key, value in stale.items():
        set_committed_value(instance, key, value)


def _stored(db_session, model, row_id, column):
    db_session.expire_all()
    return getattr(db_session.get(model, row_id), column)


class TestEventPool:
    def test_award_rejected_when_pool_spent_elsewhere(self, db_session, make_user, make_event):
        manager = make_user("manager1", role=Role.MANAGER)
        guest = make_user("guest001")
        event = make_event(guests=[guest], points_allocated=100)

        commit_elsewhere(db_session, event, points_awarded=95)
        assert event.points_remain == 100

        with pytest.raises(InvalidInputError):
            accounting_service.create_event_award(
                event_id=event.id, amount=20, actor=principal_for(manager), utorid="guest001"
            )

        assert _stored(db_session, Event, event.id, "points_awarded") == 95
        assert _stored(db_session, User, guest.id, "points") == 0
        assert db_session.query(Transaction).count() == 0


class TestRedemptionClaim:
    def test_second_processor_loses(self, db_session, make_user):
        make_user("cashier1", role=Role.CASHIER)
        other = make_user("cashier2", role=Role.CASHIER)
        user = make_user("redeem01")
        accounting_service.create_purchase(utorid="redeem01", spent=25, created_by="cashier1")
        request = accounting_service.create_redemption_request(utorid="redeem01", amount=60)
        tx = db_session.get(Transaction, request["id"])

        commit_elsewhere(db_session, tx, processed_by_id=other.id)
        assert tx.processed_by_id is None

        with pytest.raises(InvalidInputError):
            process_redemption(request["id"], "cashier1")

        assert _stored(db_session, Transaction, request["id"], "processed_by_id") == other.id
        assert _stored(db_session, User, user.id, "points") == 100


class TestSuspiciousFlag:
    def test_flag_already_flipped_elsewhere_moves_nothing(self, db_session, make_user):
        make_user("cashier1", role=Role.CASHIER)
        user = make_user("buyer001")
        purchase = accounting_service.create_purchase(utorid="buyer001", spent=100, created_by="cashier1")
        tx = db_session.get(Transaction, purchase["id"])

        # The other reviewer flipped the flag and withdrew the credit together
        commit_elsewhere(db_session, db_session.get(User, user.id), points=0)
        commit_elsewhere(db_session, tx, suspicious=True)
        assert tx.suspicious is False

        data = set_suspicious(purchase["id"], True)

        assert data["suspicious"] is True
        assert _stored(db_session, User, user.id, "points") == 0
        assert _stored(db_session, Transaction, purchase["id"], "suspicious") is True


class TestBalanceGuard:
    def test_transfer_rejected_when_balance_spent_elsewhere(self, db_session, make_user):
        sender = make_user("sender01", points=100)
        recipient = make_user("recver01")

        commit_elsewhere(db_session, sender, points=5)
        assert sender.points == 100

        with pytest.raises(InvalidInputError):
            accounting_service.create_transfer(sender_utorid="sender01", recipient_id=recipient.id, amount=30)

        assert _stored(db_session, User, sender.id, "points") == 5
        assert _stored(db_session, User, recipient.id, "points") == 0
        assert db_session.query(Transaction).count() == 0

    def test_redemption_processing_rejected_when_balance_spent_elsewhere(self, db_session, make_user):
        make_user("cashier1", role=Role.CASHIER)
        user = make_user("redeem01")
        accounting_service.create_purchase(utorid="redeem01", spent=25, created_by="cashier1")
        request = accounting_service.create_redemption_request(utorid="redeem01", amount=60)

        commit_elsewhere(db_session, db_session.get(User, user.id), points=10)

        with pytest.raises(InvalidInputError):
            process_redemption(request["id"], "cashier1")

        assert _stored(db_session, Transaction, request["id"], "processed_by_id") is None
        assert _stored(db_session, User, user.id, "points") == 10
