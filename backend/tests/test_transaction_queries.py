"""
Transaction listing: filters, magnitude matching, paging and sorting.
"""

import pytest

from rewards.errors import InvalidInputError, NotFoundError
from rewards.roles import Role
from rewards.services import accounting_service
from rewards.services.pagination import parse_sort, resolve_page
from rewards.services.transaction_query_service import (
    SORT_COLUMNS,
    TransactionFilters,
    get_transaction,
    list_transactions,
    list_user_transactions,
)


@pytest.fixture
def ledger(db_session, make_user, make_promotion):
    """Two users with a purchase each, a transfer between them and an adjustment."""
    manager = make_user("manager1", role=Role.MANAGER)
    alice = make_user("alice001", name="Alice Smith")
    bob = make_user("bob00001", name="Bob Jones")
    promo = make_promotion(points=10)

    first = accounting_service.create_purchase(
        utorid="alice001", spent=50, created_by="manager1", promotion_ids=[promo.id]
    )
    accounting_service.create_purchase(utorid="bob00001", spent=5, created_by="manager1")
    accounting_service.create_transfer(sender_utorid="alice001", recipient_id=bob.id, amount=100)
    adjustment = accounting_service.create_adjustment(
        utorid="alice001", amount=-10, related_id=first["id"], created_by="manager1"
    )
    return {
        "manager": manager,
        "alice": alice,
        "bob": bob,
        "promo": promo,
        "purchase_id": first["id"],
        "adjustment_id": adjustment["id"],
    }


def _ids(page):
    return [row["id"] for row in page["results"]]


class TestListTransactions:
    def test_default_is_newest_first(self, ledger):
        page = list_transactions(TransactionFilters())
        assert page["count"] == 5
        assert _ids(page) == sorted(_ids(page), reverse=True)

    def test_filter_by_owner_name(self, ledger):
        page = list_transactions(TransactionFilters(name="Smith"))
        assert page["count"] == 3
        assert {row["utorid"] for row in page["results"]} == {"alice001"}

    def test_filter_by_creator(self, ledger):
        page = list_transactions(TransactionFilters(created_by="alice"))
        assert page["count"] == 2
        assert {row["type"] for row in page["results"]} == {"transfer"}

    def test_filter_by_type(self, ledger):
        page = list_transactions(TransactionFilters(type="purchase"))
        assert page["count"] == 2

    def test_filter_by_promotion(self, ledger):
        page = list_transactions(TransactionFilters(promotion_id=ledger["promo"].id))
        assert _ids(page) == [ledger["purchase_id"]]

    def test_related_id_uses_type_meaning(self, ledger):
        page = list_transactions(TransactionFilters(type="adjustment", related_id=ledger["purchase_id"]))
        assert _ids(page) == [ledger["adjustment_id"]]

        page = list_transactions(TransactionFilters(type="transfer", related_id=ledger["bob"].id))
        assert page["count"] == 1
        assert page["results"][0]["utorid"] == "alice001"

    def test_related_id_on_purchase_matches_nothing(self, ledger):
        page = list_transactions(TransactionFilters(type="purchase", related_id=1))
        assert page == {"count": 0, "results": []}

    def test_related_id_requires_type(self, ledger):
        with pytest.raises(InvalidInputError):
            list_transactions(TransactionFilters(related_id=1))

    def test_suspicious_filter(self, ledger):
        assert list_transactions(TransactionFilters(suspicious=True))["count"] == 0
        assert list_transactions(TransactionFilters(suspicious=False))["count"] == 5

    def test_amount_compares_magnitude(self, ledger):
        # alice purchase 210, bob purchase 20, transfer -100/+100, adjustment -10
        page = list_transactions(TransactionFilters(amount=100, operator="gte"))
        assert sorted(row["amount"] for row in page["results"]) == [-100, 100, 210]

        page = list_transactions(TransactionFilters(amount=20, operator="lte"))
        assert sorted(row["amount"] for row in page["results"]) == [-10, 20]

    def test_amount_requires_operator(self, ledger):
        with pytest.raises(InvalidInputError):
            list_transactions(TransactionFilters(amount=5))
        with pytest.raises(InvalidInputError):
            list_transactions(TransactionFilters(amount=5, operator="eq"))

    def test_unknown_type(self, ledger):
        with pytest.raises(InvalidInputError):
            list_transactions(TransactionFilters(type="refund"))

    def test_paging(self, ledger):
        everything = _ids(list_transactions(TransactionFilters()))
        page = list_transactions(TransactionFilters(page=2, limit=2))

        assert page["count"] == 5
        assert _ids(page) == everything[2:4]

    def test_page_beyond_end_is_empty(self, ledger):
        page = list_transactions(TransactionFilters(page=10, limit=10))
        assert page == {"count": 5, "results": []}

    def test_sort_by_amount(self, ledger):
        page = list_transactions(TransactionFilters(sort="amount-asc"))
        amounts = [row["amount"] for row in page["results"]]
        assert amounts == sorted(amounts)

    def test_sort_without_direction_is_ascending(self, ledger):
        page = list_transactions(TransactionFilters(sort="amount"))
        amounts = [row["amount"] for row in page["results"]]
        assert amounts == sorted(amounts)


class TestListUserTransactions:
    def test_only_own_rows(self, ledger):
        page = list_user_transactions(ledger["bob"].id, TransactionFilters(name="alice"))
        assert page["count"] == 2
        assert {row["utorid"] for row in page["results"]} == {"bob00001"}

    def test_amount_compares_signed_values(self, ledger):
        page = list_user_transactions(ledger["alice"].id, TransactionFilters(amount=0, operator="lte"))
        assert sorted(row["amount"] for row in page["results"]) == [-100, -10]


class TestPagination:
    def test_defaults(self):
        assert resolve_page() == (0, 10)
        assert resolve_page(3, 5) == (10, 5)

    @pytest.mark.parametrize("page,limit", [(0, 10), (1, 0), (-1, 5)])
    def test_invalid(self, page, limit):
        with pytest.raises(InvalidInputError):
            resolve_page(page, limit)

    def test_unknown_sort_falls_back(self):
        clause = parse_sort("bogus-asc", SORT_COLUMNS, ("id", "desc"))
        assert str(clause) == str(SORT_COLUMNS["id"].desc())

    @pytest.mark.parametrize("sort", ["amount", "amount-foo", "amount-asc"])
    def test_known_field_defaults_to_ascending(self, sort):
        clause = parse_sort(sort, SORT_COLUMNS, ("id", "desc"))
        assert str(clause) == str(SORT_COLUMNS["amount"].asc())

    def test_known_field_descending(self):
        clause = parse_sort("amount-desc", SORT_COLUMNS, ("id", "desc"))
        assert str(clause) == str(SORT_COLUMNS["amount"].desc())


def test_get_transaction(ledger):
    data = get_transaction(ledger["purchase_id"])
    assert data["type"] == "purchase"
    assert data["spent"] == 50.0
    assert data["promotionIds"] == [ledger["promo"].id]

    with pytest.raises(NotFoundError):
        get_transaction(9999)
