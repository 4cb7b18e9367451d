"""
Promotion catalog, event lifecycle and account management rules.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import insert

from rewards.errors import ConflictError, ForbiddenError, GoneError, InvalidInputError, NotFoundError
from rewards.models import Event, Promotion, User, event_guests
from rewards.roles import Role
from rewards.services import accounting_service, events_service, promotions_service, users_service
from rewards.services.auth_service import verify_password
from rewards.time_utils import utcnow

from conftest import principal_for


# ---------------------------------------------------------------------------
# Promotions
# ---------------------------------------------------------------------------

class TestPromotions:
    def _payload(self, **overrides):
        now = utcnow()
        data = {
            "name": "Fall bonus",
            "description": "Extra points in October",
            "type": "automatic",
            "startTime": now + timedelta(days=1),
            "endTime": now + timedelta(days=10),
            "minSpending": Decimal("10.00"),
            "rate": Decimal("0.05"),
            "points": 0,
        }
        data.update(overrides)
        return data

    def test_create(self, db_session):
        result = promotions_service.create_promotion(self._payload())
        assert result["name"] == "Fall bonus"
        assert result["type"] == "automatic"
        assert db_session.get(Promotion, result["id"]) is not None

    def test_create_in_past_rejected(self, db_session):
        with pytest.raises(InvalidInputError):
            promotions_service.create_promotion(self._payload(startTime=utcnow() - timedelta(hours=1)))

    def test_create_end_before_start_rejected(self, db_session):
        now = utcnow()
        with pytest.raises(InvalidInputError):
            promotions_service.create_promotion(
                self._payload(startTime=now + timedelta(days=2), endTime=now + timedelta(days=1))
            )

    def test_regular_sees_only_usable_promotions(self, db_session, make_user, make_promotion):
        make_user("cashier1", role=Role.CASHIER)
        user = make_user("regular1")
        active = make_promotion("Active")
        make_promotion("Upcoming", starts_in=24, ends_in=48)
        make_promotion("Expired", starts_in=-48, ends_in=-24)
        used = make_promotion("Used", promo_type="one-time", points=10)
        accounting_service.create_purchase(
            utorid="regular1", spent=1, created_by="cashier1", promotion_ids=[used.id]
        )

        page = promotions_service.list_promotions(principal_for(user))

        assert page["count"] == 1
        assert [p["id"] for p in page["results"]] == [active.id]
        assert "description" not in page["results"][0]
        assert "startTime" not in page["results"][0]

    def test_manager_sees_everything_and_filters(self, db_session, make_user, make_promotion):
        manager = make_user("manager1", role=Role.MANAGER)
        make_promotion("Active")
        upcoming = make_promotion("Upcoming", starts_in=24, ends_in=48)
        make_promotion("Expired", starts_in=-48, ends_in=-24)

        everything = promotions_service.list_promotions(principal_for(manager))
        assert everything["count"] == 3
        assert "startTime" in everything["results"][0]

        not_started = promotions_service.list_promotions(principal_for(manager), started=False)
        assert [p["id"] for p in not_started["results"]] == [upcoming.id]

        with pytest.raises(InvalidInputError):
            promotions_service.list_promotions(principal_for(manager), started=True, ended=True)

    def test_regular_cannot_view_inactive_promotion(self, db_session, make_user, make_promotion):
        user = make_user("regular1")
        upcoming = make_promotion(starts_in=24, ends_in=48)

        with pytest.raises(NotFoundError):
            promotions_service.get_promotion(upcoming.id, principal_for(user))

    def test_only_end_time_editable_after_start(self, db_session, make_promotion):
        promo = make_promotion(starts_in=-1, ends_in=24)

        with pytest.raises(InvalidInputError):
            promotions_service.update_promotion(promo.id, {"name": "Renamed"})

        new_end = utcnow() + timedelta(days=3)
        result = promotions_service.update_promotion(promo.id, {"endTime": new_end})
        assert "endTime" in result
        assert db_session.get(Promotion, promo.id).end_time == new_end

    def test_update_before_start(self, db_session, make_promotion):
        promo = make_promotion(starts_in=24, ends_in=48)
        result = promotions_service.update_promotion(promo.id, {"name": "Renamed", "points": 30})

        assert result == {"id": promo.id, "name": "Renamed", "type": "automatic", "points": 30}

    def test_delete_started_forbidden(self, db_session, make_promotion):
        promo = make_promotion(starts_in=-1)
        with pytest.raises(ForbiddenError):
            promotions_service.delete_promotion(promo.id)

    def test_delete_upcoming(self, db_session, make_promotion):
        promo = make_promotion(starts_in=24, ends_in=48)
        promo_id = promo.id
        promotions_service.delete_promotion(promo_id)
        assert db_session.get(Promotion, promo_id) is None


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class TestEvents:
    def test_create_makes_creator_organizer(self, db_session, make_user):
        manager = make_user("manager1", role=Role.MANAGER)
        now = utcnow()
        result = events_service.create_event(
            {
                "name": "Hackathon",
                "description": "Build things",
                "location": "Bahen Centre",
                "startTime": now + timedelta(days=1),
                "endTime": now + timedelta(days=2),
                "capacity": 50,
                "points": 500,
            },
            manager.id,
        )

        assert result["pointsRemain"] == 500
        assert result["pointsAwarded"] == 0
        assert result["published"] is False
        assert [o["utorid"] for o in result["organizers"]] == ["manager1"]

    def test_regular_sees_only_published(self, db_session, make_user, make_event):
        user = make_user("regular1")
        public = make_event("Public")
        make_event("Draft", published=False)

        page = events_service.list_events(principal_for(user))
        assert [e["id"] for e in page["results"]] == [public.id]
        assert "pointsRemain" not in page["results"][0]

        with pytest.raises(NotFoundError):
            draft = db_session.query(Event).filter_by(name="Draft").one()
            events_service.get_event(draft.id, principal_for(user))

    def test_full_events_hidden_unless_requested(self, db_session, make_user, make_event):
        manager = make_user("manager1", role=Role.MANAGER)
        guest = make_user("guest001")
        make_event("Open")
        full = make_event("Full", capacity=1, guests=[guest])

        assert events_service.list_events(principal_for(manager))["count"] == 1
        page = events_service.list_events(principal_for(manager), show_full=True)
        assert page["count"] == 2
        assert full.id in [e["id"] for e in page["results"]]

    def test_organizer_cannot_change_points(self, db_session, make_user, make_event):
        organizer = make_user("organiz1")
        event = make_event(starts_in=24, ends_in=48, organizers=[organizer])

        with pytest.raises(ForbiddenError):
            events_service.update_event(event.id, {"points": 1000}, principal_for(organizer))

        result = events_service.update_event(event.id, {"location": "Myhal"}, principal_for(organizer))
        assert result == {"id": event.id, "name": "Event", "location": "Myhal"}

    def test_stranger_cannot_update(self, db_session, make_user, make_event):
        user = make_user("regular1")
        event = make_event(starts_in=24, ends_in=48)
        with pytest.raises(ForbiddenError):
            events_service.update_event(event.id, {"name": "Mine"}, principal_for(user))

    def test_points_cannot_drop_below_awarded(self, db_session, make_user, make_event):
        manager = make_user("manager1", role=Role.MANAGER)
        event = make_event(points_allocated=100, points_awarded=60)

        with pytest.raises(InvalidInputError):
            events_service.update_event(event.id, {"points": 50}, principal_for(manager))

        result = events_service.update_event(event.id, {"points": 80}, principal_for(manager))
        assert result["pointsRemain"] == 20

    def test_unpublish_rejected(self, db_session, make_user, make_event):
        manager = make_user("manager1", role=Role.MANAGER)
        event = make_event()
        with pytest.raises(InvalidInputError):
            events_service.update_event(event.id, {"published": False}, principal_for(manager))

    def test_delete_published_rejected(self, db_session, make_event):
        event = make_event(published=True)
        with pytest.raises(InvalidInputError):
            events_service.delete_event(event.id)

    def test_delete_draft(self, db_session, make_event):
        event = make_event(published=False)
        event_id = event.id
        events_service.delete_event(event_id)
        assert db_session.get(Event, event_id) is None

    def test_guest_and_organizer_are_exclusive(self, db_session, make_user, make_event):
        organizer = make_user("organiz1")
        guest = make_user("guest001")
        event = make_event(organizers=[organizer], guests=[guest])

        with pytest.raises(InvalidInputError):
            events_service.add_organizer(event.id, "guest001")
        with pytest.raises(InvalidInputError):
            events_service.add_guest_me(event.id, principal_for(organizer))

    def test_rsvp_respects_capacity(self, db_session, make_user, make_event):
        first = make_user("first001")
        second = make_user("second01")
        event = make_event(capacity=1)

        result = events_service.add_guest_me(event.id, principal_for(first))
        assert result["numGuests"] == 1
        assert result["guestAdded"]["utorid"] == "first001"

        with pytest.raises(GoneError):
            events_service.add_guest_me(event.id, principal_for(second))

    def test_capacity_checked_at_write_time(self, db_session, make_user, make_event):
        early = make_user("early001")
        late = make_user("late0001")
        event = make_event(capacity=1)
        assert event.num_guests == 0

        # Seat taken by another request after this session loaded the guest list
        db_session.execute(insert(event_guests).values(event_id=event.id, user_id=early.id))

        with pytest.raises(GoneError):
            events_service.add_guest_me(event.id, principal_for(late))
        assert not db_session.get(Event, event.id).has_guest(late.id)

    def test_organizer_cannot_overfill(self, db_session, make_user, make_event):
        organizer = make_user("organiz1")
        early = make_user("early001")
        make_user("late0001")
        event = make_event(capacity=1, organizers=[organizer])
        assert event.num_guests == 0

        db_session.execute(insert(event_guests).values(event_id=event.id, user_id=early.id))

        with pytest.raises(GoneError):
            events_service.add_guest(event.id, "late0001", principal_for(organizer))

    def test_rsvp_twice_rejected(self, db_session, make_user, make_event):
        user = make_user("regular1")
        event = make_event(guests=[user])
        with pytest.raises(InvalidInputError):
            events_service.add_guest_me(event.id, principal_for(user))

    def test_rsvp_after_end(self, db_session, make_user, make_event):
        user = make_user("regular1")
        event = make_event(starts_in=-48, ends_in=-24)
        with pytest.raises(GoneError):
            events_service.add_guest_me(event.id, principal_for(user))

    def test_withdraw_rsvp(self, db_session, make_user, make_event):
        user = make_user("regular1")
        event = make_event(guests=[user])

        events_service.remove_guest_me(event.id, principal_for(user))
        assert not db_session.get(Event, event.id).has_guest(user.id)

        with pytest.raises(NotFoundError):
            events_service.remove_guest_me(event.id, principal_for(user))

    def test_organizer_adds_guest(self, db_session, make_user, make_event):
        organizer = make_user("organiz1")
        make_user("guest001")
        event = make_event(organizers=[organizer])

        result = events_service.add_guest(event.id, "guest001", principal_for(organizer))
        assert result["guestAdded"]["utorid"] == "guest001"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class TestUsers:
    def test_register_issues_activation_token(self, db_session):
        result = users_service.register_user(utorid="newuser1", name="New User", email="newuser1@mail.utoronto.ca")

        assert result["verified"] is False
        assert result["resetToken"]
        user = db_session.get(User, result["id"])
        assert user.role == "regular"
        assert user.activated is False

    def test_register_duplicate(self, db_session, make_user):
        make_user("taken001")
        with pytest.raises(ConflictError):
            users_service.register_user(utorid="taken001", name="Dup", email="other@mail.utoronto.ca")
        with pytest.raises(ConflictError):
            users_service.register_user(utorid="fresh001", name="Dup", email="taken001@mail.utoronto.ca")

    def test_list_filters(self, db_session, make_user):
        make_user("cashier1", role=Role.CASHIER)
        make_user("regular1")
        make_user("unverif1", verified=False)

        assert users_service.list_users(role="cashier")["count"] == 1
        assert users_service.list_users(verified=False)["count"] == 1
        assert users_service.list_users(name="regular")["count"] == 1

        with pytest.raises(InvalidInputError):
            users_service.list_users(role="wizard")

    def test_cashier_view_is_limited(self, db_session, make_user, make_promotion):
        cashier = make_user("cashier1", role=Role.CASHIER)
        user = make_user("regular1")
        one_time = make_promotion(promo_type="one-time", points=20)

        data = users_service.get_user(user.id, principal_for(cashier))
        assert set(data) == {"id", "utorid", "name", "points", "verified", "promotions"}
        assert [p["id"] for p in data["promotions"]] == [one_time.id]

    def test_manager_cannot_promote_to_manager(self, db_session, make_user):
        manager = make_user("manager1", role=Role.MANAGER)
        user = make_user("regular1")
        with pytest.raises(ForbiddenError):
            users_service.update_user(user.id, {"role": "manager"}, principal_for(manager))

    def test_superuser_can_promote_to_manager(self, db_session, make_user):
        superuser = make_user("super001", role=Role.SUPERUSER)
        user = make_user("regular1")
        result = users_service.update_user(user.id, {"role": "manager"}, principal_for(superuser))
        assert result["role"] == "manager"

    def test_promotion_to_cashier_clears_suspicious(self, db_session, make_user):
        manager = make_user("manager1", role=Role.MANAGER)
        user = make_user("regular1", suspicious=True)

        result = users_service.update_user(user.id, {"role": "cashier"}, principal_for(manager))

        assert result["suspicious"] is False
        assert db_session.get(User, user.id).suspicious is False

    def test_verified_only_set_true(self, db_session, make_user):
        manager = make_user("manager1", role=Role.MANAGER)
        user = make_user("regular1", verified=False)

        with pytest.raises(InvalidInputError):
            users_service.update_user(user.id, {"verified": False}, principal_for(manager))
        result = users_service.update_user(user.id, {"verified": True}, principal_for(manager))
        assert result == {"id": user.id, "utorid": "regular1", "name": "Regular1", "verified": True}

    def test_update_me_email_conflict(self, db_session, make_user):
        make_user("taken001")
        user = make_user("regular1")
        with pytest.raises(ConflictError):
            users_service.update_me(user.id, {"email": "taken001@mail.utoronto.ca"})

    def test_update_password(self, db_session, make_user):
        user = make_user("regular1", password="OldPass1!")

        with pytest.raises(ForbiddenError):
            users_service.update_password(user.id, "WrongPass1!", "NewPass1!")

        users_service.update_password(user.id, "OldPass1!", "NewPass1!")
        assert verify_password("NewPass1!", db_session.get(User, user.id).password_hash)
