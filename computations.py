"""
Balances and settlement logic for SplitKit
"""
from __future__ import annotations
import logging
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from errors import UnknownMemberError
from models import Expense, Group, Member, Settlement, Transfer
from utils import format_money, from_cents, new_id, now_iso, parse_date, to_cents

logger = logging.getLogger(__name__)


def _in_group(group: Group, records: Iterable) -> list:
    return [r for r in records if r.group_id == group.id]


def find_unknown_members(
    group: Group,
    expenses: Iterable[Expense],
    settlements: Iterable[Settlement],
) -> List[UnknownMemberError]:
    """
    Check that every member referenced by the group's records belongs to
    the group. Returns one error per bad reference, empty if all is well.
    """
    known = set(group.member_ids())
    problems = []
    for e in _in_group(group, expenses):
        for mid in [e.payer_id] + [s.member_id for s in e.shares]:
            if mid not in known:
                problems.append(UnknownMemberError(mid, e.id))
    for s in _in_group(group, settlements):
        for mid in (s.from_member, s.to_member):
            if mid not in known:
                problems.append(UnknownMemberError(mid, s.id))
    return problems


def _net_cents(
    group: Group,
    expenses: Iterable[Expense],
    settlements: Iterable[Settlement],
) -> Dict[str, int]:
    net = {mid: 0 for mid in group.member_ids()}

    def book(member_id: str, cents: int, record_id: str) -> None:
        if member_id not in net:
            raise UnknownMemberError(member_id, record_id)
        net[member_id] += cents

    for e in _in_group(group, expenses):
        book(e.payer_id, to_cents(e.amount), e.id)
        for s in e.shares:
            book(s.member_id, -to_cents(s.amount), e.id)

    for s in _in_group(group, settlements):
        # paying someone reduces your debt and their credit
        book(s.from_member, to_cents(s.amount), s.id)
        book(s.to_member, -to_cents(s.amount), s.id)

    return net


def compute_net_by_user(
    group: Group,
    expenses: Iterable[Expense],
    settlements: Iterable[Settlement],
) -> Dict[str, float]:
    """
    Net balance per member of the group.
    Positive -> the group owes the member; negative -> the member owes the group.
    Raises UnknownMemberError if a record references a member outside the group.
    """
    return {mid: from_cents(c) for mid, c in _net_cents(group, expenses, settlements).items()}


def suggest_settlements(
    group: Group,
    expenses: Iterable[Expense],
    settlements: Iterable[Settlement],
) -> List[Transfer]:
    """
    Compute transfers that bring every balance to zero.
    Greedy settlement: largest debtor pays largest creditor, as much as
    both of them allow, until one side runs out.
    """
    net = _net_cents(group, expenses, settlements)
    debtors = [[mid, -c] for mid, c in net.items() if c < 0]
    creditors = [[mid, c] for mid, c in net.items() if c > 0]
    debtors.sort(key=lambda x: x[1], reverse=True)
    creditors.sort(key=lambda x: x[1], reverse=True)

    transfers = []
    i = j = 0
    while i < len(debtors) and j < len(creditors):
        d, c = debtors[i], creditors[j]
        pay = min(d[1], c[1])
        transfers.append(Transfer(from_member=d[0], to_member=c[0], amount=from_cents(pay)))
        d[1] -= pay
        c[1] -= pay
        if d[1] < 1:
            i += 1
        if c[1] < 1:
            j += 1

    leftover = sum(x[1] for x in debtors[i:]) + sum(x[1] for x in creditors[j:])
    if leftover:
        logger.warning(
            "Group %s: balances do not sum to zero, %s left unsettled",
            group.id, format_money(from_cents(leftover), group.currency),
        )
    logger.debug("Group %s: %d transfers suggested", group.id, len(transfers))
    return transfers


def apply_transfers(
    group: Group,
    transfers: Sequence[Transfer],
    settled_at: Optional[str] = None,
    id_factory: Callable[[], str] = new_id,
) -> List[Settlement]:
    """Turn suggested transfers into settlement records"""
    when = settled_at or now_iso()
    return [
        Settlement(
            id=id_factory(),
            group_id=group.id,
            from_member=t.from_member,
            to_member=t.to_member,
            amount=t.amount,
            date=when,
        )
        for t in transfers
    ]


def filter_expenses_by_date(
    expenses: Iterable[Expense],
    start: Optional[date],
    end: Optional[date],
) -> List[Expense]:
    """Filter expenses by date range (both ends inclusive)"""
    out = []
    for e in expenses:
        ed = parse_date(e.date)
        if start and ed < start:
            continue
        if end and ed > end:
            continue
        out.append(e)
    return out


def compute_summary(
    group: Group,
    expenses: Iterable[Expense],
    settlements: Iterable[Settlement],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Dict[str, dict]:
    """
    Compute summary statistics for each member.
    Returns dict mapping member id -> {paid, consumed, sent, received, net}
    """
    exps = filter_expenses_by_date(_in_group(group, expenses), start, end)
    setts = _in_group(group, settlements)
    if start or end:
        setts = [s for s in setts
                 if not (start and parse_date(s.date) < start)
                 and not (end and parse_date(s.date) > end)]

    ids = group.member_ids()
    paid = {m: 0 for m in ids}
    consumed = {m: 0 for m in ids}
    sent = {m: 0 for m in ids}
    received = {m: 0 for m in ids}

    for e in exps:
        paid[e.payer_id] = paid.get(e.payer_id, 0) + to_cents(e.amount)
        for s in e.shares:
            consumed[s.member_id] = consumed.get(s.member_id, 0) + to_cents(s.amount)
    for s in setts:
        sent[s.from_member] = sent.get(s.from_member, 0) + to_cents(s.amount)
        received[s.to_member] = received.get(s.to_member, 0) + to_cents(s.amount)

    unknown = (set(paid) | set(consumed) | set(sent) | set(received)) - set(ids)
    if unknown:
        raise UnknownMemberError(sorted(unknown)[0])

    return {
        m: {
            "paid": from_cents(paid[m]),
            "consumed": from_cents(consumed[m]),
            "sent": from_cents(sent[m]),
            "received": from_cents(received[m]),
            "net": from_cents(paid[m] - consumed[m] + sent[m] - received[m]),
        } for m in ids
    }


def viewer_member(group: Group) -> Optional[Member]:
    """Member named 'You' if there is one, else the first member"""
    for m in group.members:
        if m.name.strip().lower() == "you":
            return m
    return group.members[0] if group.members else None


def balance_text(member: Member, net: float, currency: str, viewer_name: str = "you") -> str:
    """
    Status line for a member, e.g. 'You are owed USD 50.00'.
    The member whose name matches viewer_name is addressed as "You".
    """
    cents = to_cents(net)
    if cents == 0:
        return "All settled"
    amount = format_money(from_cents(abs(cents)), currency)
    if member.name.strip().lower() == viewer_name.strip().lower():
        return f"You are owed {amount}" if cents > 0 else f"You owe {amount}"
    return f"{member.name} is owed {amount}" if cents > 0 else f"{member.name} owes {amount}"
