"""
Allocation of an amount among members for SplitKit.

All splits use the largest-remainder method on integer cents: every share
is a whole number of cents and the shares add up to the total exactly.
"""
from __future__ import annotations
import logging
from fractions import Fraction
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from models import ExpenseShare
from utils import Number, from_cents, to_cents

logger = logging.getLogger(__name__)

SPLIT_MODES = ("equal", "amounts", "percent", "weights")


def _apportion(total_cents: int, weights: Sequence[Fraction]) -> List[int]:
    """Split non-negative total_cents by weights, largest remainder first"""
    sum_w = sum(weights)
    raw = [total_cents * w / sum_w for w in weights]
    base = [v.numerator // v.denominator for v in raw]
    remainder = total_cents - sum(base)
    # sorted() is stable, so equal remainders keep list order
    order = sorted(range(len(raw)), key=lambda i: raw[i] - base[i], reverse=True)
    for i in order[:remainder]:
        base[i] += 1
    return base


def allocate_proportional(
    member_ids: Sequence[str],
    weights: Sequence[Union[int, float, Fraction]],
    total: Number,
) -> Dict[str, float]:
    """
    Split total among members proportionally to weights.

    Negative weights count as zero. If all weights are zero, or the total
    rounds to zero cents, every member gets 0. A negative total is split
    by its absolute value and the shares negated.
    """
    if len(member_ids) != len(weights):
        raise ValueError(
            f"Got {len(member_ids)} members but {len(weights)} weights"
        )
    total_cents = to_cents(total)
    ws = [max(Fraction(0), Fraction(w)) for w in weights]

    if sum(ws) <= 0 or total_cents == 0:
        return {m: 0.0 for m in member_ids}

    sign = -1 if total_cents < 0 else 1
    cents = _apportion(abs(total_cents), ws)

    out: Dict[str, int] = {}
    for m, c in zip(member_ids, cents):
        # duplicates are not meaningful; summing keeps the total exact
        out[m] = out.get(m, 0) + sign * c
    return {m: from_cents(c) for m, c in out.items()}


def allocate_equal(member_ids: Sequence[str], total: Number) -> Dict[str, float]:
    """Split total equally among members"""
    return allocate_proportional(member_ids, [1] * len(member_ids), total)


def allocate_percent(
    member_ids: Sequence[str],
    percentages: Sequence[Union[int, float]],
    total: Number,
) -> Dict[str, float]:
    """
    Split total by percentages. They do not have to add up to 100: the
    result always sums to total, in proportion to the given numbers.
    """
    return allocate_proportional(member_ids, percentages, total)


def allocate_by_mode(
    mode: str,
    member_ids: Sequence[str],
    total: Number,
    values: Optional[Mapping[str, float]] = None,
) -> Dict[str, float]:
    """
    Allocate using one of SPLIT_MODES.
    values holds per-member amounts, percentages or weights depending on mode;
    members missing from values get 0 (amounts, percent) or 1 (weights).
    """
    values = values or {}
    if mode == "equal":
        return allocate_equal(member_ids, total)
    if mode == "amounts":
        return {m: from_cents(to_cents(values.get(m, 0))) for m in member_ids}
    if mode == "percent":
        return allocate_percent(member_ids, [values.get(m, 0) for m in member_ids], total)
    if mode == "weights":
        return allocate_proportional(member_ids, [values.get(m, 1) for m in member_ids], total)
    raise ValueError(f"Unknown split mode {mode!r}; expected one of {', '.join(SPLIT_MODES)}")


def build_shares(allocation: Mapping[str, float]) -> Tuple[ExpenseShare, ...]:
    """Turn a member -> amount mapping into expense shares"""
    return tuple(ExpenseShare(member_id=m, amount=a) for m, a in allocation.items())


def shares_total(shares: Sequence[ExpenseShare]) -> float:
    """Sum of share amounts, exact to the cent"""
    return from_cents(sum(to_cents(s.amount) for s in shares))


def shares_match(amount: Number, shares: Sequence[ExpenseShare]) -> bool:
    """True when shares add up to amount"""
    diff = to_cents(amount) - sum(to_cents(s.amount) for s in shares)
    if diff:
        logger.debug("Shares are off by %d cents", diff)
    return diff == 0
