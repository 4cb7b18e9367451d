# Overview: Read-side filtering, paging and shaping of ledger rows.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, false, or_
from sqlalchemy.orm import aliased

from ..errors import InvalidInputError, NotFoundError
from ..extensions import db
from ..models import Promotion, Transaction, User
from ..models.transactions import RELATED_COLUMN_BY_TYPE, TRANSACTION_TYPES
from .pagination import paginate, parse_sort


AMOUNT_OPERATORS = ("gte", "lte")

SORT_COLUMNS = {
    "id": Transaction.id,
    "amount": Transaction.amount,
    "createdAt": Transaction.created_at,
    "type": Transaction.tx_type,
}
DEFAULT_SORT = ("id", "desc")


@dataclass
class TransactionFilters:
    name: Optional[str] = None
    created_by: Optional[str] = None
    type: Optional[str] = None
    promotion_id: Optional[int] = None
    related_id: Optional[int] = None
    suspicious: Optional[bool] = None
    amount: Optional[int] = None
    operator: Optional[str] = None
    page: Optional[int] = None
    limit: Optional[int] = None
    sort: Optional[str] = None

    def validate(self) -> None:
        if self.type is not None and self.type not in TRANSACTION_TYPES:
            raise InvalidInputError(f"Unknown transaction type: {self.type}")
        if self.related_id is not None and self.type is None:
            raise InvalidInputError("relatedId requires type")
        if (self.amount is None) != (self.operator is None):
            raise InvalidInputError("amount and operator must be given together")
        if self.operator is not None and self.operator not in AMOUNT_OPERATORS:
            raise InvalidInputError("operator must be gte or lte")


def _amount_clause(amount: int, operator: str, symmetric: bool):
    # The global view compares magnitudes so a "gte 100" search also finds
    # -100 transfers and adjustments.
    column = Transaction.amount
    if not symmetric:
        return column >= amount if operator == "gte" else column <= amount
    if operator == "gte":
        return or_(column >= amount, column <= -amount)
    return and_(column >= -amount, column <= amount)


def _apply_filters(query, filters: TransactionFilters, *, symmetric: bool):
    filters.validate()

    if filters.name:
        owner = aliased(User)
        query = query.join(owner, Transaction.user_id == owner.id).filter(
            or_(owner.utorid.contains(filters.name), owner.name.contains(filters.name))
        )
    if filters.created_by:
        creator = aliased(User)
        query = query.join(creator, Transaction.created_by_id == creator.id).filter(
            creator.utorid.contains(filters.created_by)
        )
    if filters.type:
        query = query.filter(Transaction.tx_type == filters.type)
    if filters.related_id is not None:
        column_name = RELATED_COLUMN_BY_TYPE.get(filters.type)
        if column_name is None:
            query = query.filter(false())
        else:
            query = query.filter(getattr(Transaction, column_name) == filters.related_id)
    if filters.promotion_id is not None:
        query = query.filter(Transaction.promotions.any(Promotion.id == filters.promotion_id))
    if filters.suspicious is not None:
        query = query.filter(Transaction.suspicious == filters.suspicious)
    if filters.amount is not None:
        query = query.filter(_amount_clause(filters.amount, filters.operator, symmetric))
    return query


def _page(query, filters: TransactionFilters) -> dict:
    order = parse_sort(filters.sort, SORT_COLUMNS, DEFAULT_SORT)
    query = query.order_by(order, Transaction.id.desc())
    total, rows = paginate(query, filters.page, filters.limit)
    return {"count": total, "results": [tx.to_dict() for tx in rows]}


def list_transactions(filters: TransactionFilters) -> dict:
    """Manager view over every ledger row."""
    query = _apply_filters(db.session.query(Transaction), filters, symmetric=True)
    return _page(query, filters)


def list_user_transactions(user_id: int, filters: TransactionFilters) -> dict:
    """A user's own history; owner filters are ignored and amounts compare as-is."""
    filters.name = None
    query = db.session.query(Transaction).filter(Transaction.user_id == user_id)
    query = _apply_filters(query, filters, symmetric=False)
    return _page(query, filters)


def get_transaction(transaction_id: int) -> dict:
    tx = db.session.get(Transaction, transaction_id)
    if not tx:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return tx.to_dict()
