# Overview: Pure promotion eligibility and points arithmetic.

"""
Earning rules:

- Base rate: 1 point per 25 cents spent, i.e. round(spent * 100 * 0.04).
- A promotion adds round(spent * rate * 100) plus its flat ``points``.
- Rounding is half-up on the decimal value, never banker's rounding.

Nothing in this module touches the database; callers pass in whether the
buyer has already consumed a one-time promotion.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional

from ..errors import InvalidInputError
from ..models import Promotion
from rewards.time_utils import is_within_window, utcnow


BASE_RATE = Decimal("0.04")

REASON_NOT_STARTED = "not started"
REASON_ENDED = "ended"
REASON_ALREADY_USED = "already used"
REASON_MIN_SPENDING = "minimum spending not met"


@dataclass(frozen=True)
class PromotionEvaluation:
    promotion_id: int
    eligible: bool
    reason: Optional[str]
    bonus_points: int

    def to_dict(self) -> dict:
        return {
            "promotionId": self.promotion_id,
            "eligible": self.eligible,
            "reason": self.reason,
            "bonusPoints": self.bonus_points,
        }


def to_decimal(value) -> Decimal:
    """Coerce a dollar amount to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInputError(f"Invalid amount: {value!r}") from None


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def base_points(spent) -> int:
    return round_half_up(to_decimal(spent) * 100 * BASE_RATE)


def bonus_points(promotion: Promotion, spent) -> int:
    """Points a promotion adds on top of the base rate for this spend."""
    bonus = 0
    if promotion.rate:
        bonus += round_half_up(to_decimal(spent) * to_decimal(promotion.rate) * 100)
    if promotion.points:
        bonus += int(promotion.points)
    return bonus


def evaluate_promotion(
    promotion: Promotion,
    *,
    spent=None,
    used_by_buyer: bool = False,
    now: Optional[datetime] = None,
) -> PromotionEvaluation:
    """
    Decide whether a promotion applies to a buyer right now.

    With ``spent`` omitted this is a visibility check only: minimum spending
    is skipped and the bonus is reported as 0.
    """
    now = now or utcnow()
    reason = None

    if not is_within_window(promotion.start_time, promotion.end_time, now):
        reason = REASON_NOT_STARTED if now < promotion.start_time else REASON_ENDED
    elif promotion.is_one_time and used_by_buyer:
        reason = REASON_ALREADY_USED
    elif spent is not None and promotion.min_spending is not None:
        if to_decimal(spent) < to_decimal(promotion.min_spending):
            reason = REASON_MIN_SPENDING

    if reason is not None:
        return PromotionEvaluation(promotion.id, False, reason, 0)

    bonus = bonus_points(promotion, spent) if spent is not None else 0
    return PromotionEvaluation(promotion.id, True, None, bonus)


def purchase_points(spent, evaluations: Iterable[PromotionEvaluation]) -> int:
    """Total earned for a purchase: base rate plus every eligible bonus."""
    return base_points(spent) + sum(e.bonus_points for e in evaluations if e.eligible)
