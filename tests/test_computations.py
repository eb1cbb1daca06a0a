import logging
import random

import pytest

from allocation import allocate_proportional
from computations import (
    apply_transfers,
    balance_text,
    compute_net_by_user,
    compute_summary,
    filter_expenses_by_date,
    find_unknown_members,
    suggest_settlements,
    viewer_member,
)
from errors import DataIntegrityError, UnknownMemberError
from models import Expense, ExpenseShare, Group, Member, Settlement, Transfer
from utils import to_cents

A, B, C = Member("a", "A"), Member("b", "B"), Member("c", "C")


def group(*members, gid="g"):
    return Group(id=gid, name="G", currency="USD", members=members)


def expense(eid, amount, payer, shares, gid="g", date="2024-05-01T10:00:00+00:00"):
    return Expense(
        id=eid, group_id=gid, title="t", amount=amount, payer_id=payer, date=date,
        shares=tuple(ExpenseShare(m, v) for m, v in shares.items()),
    )


def settlement(sid, frm, to, amount, gid="g", date="2024-05-02T10:00:00+00:00"):
    return Settlement(id=sid, group_id=gid, from_member=frm, to_member=to, amount=amount, date=date)


def test_no_expenses_all_zero():
    assert compute_net_by_user(group(A, B), [], []) == {"a": 0, "b": 0}
    assert suggest_settlements(group(A, B), [], []) == []


def test_two_people_equal():
    e = expense("e", 100, "a", {"a": 50, "b": 50})
    assert compute_net_by_user(group(A, B), [e], []) == {"a": 50.0, "b": -50.0}


def test_three_people_99():
    g = group(A, B, C)
    e = expense("e", 99, "a", {"a": 33, "b": 33, "c": 33})
    assert compute_net_by_user(g, [e], []) == {"a": 66.0, "b": -33.0, "c": -33.0}
    assert suggest_settlements(g, [e], []) == [
        Transfer("b", "a", 33.0),
        Transfer("c", "a", 33.0),
    ]


def test_alternating_payers():
    e1 = expense("1", 60, "a", {"a": 30, "b": 30})
    e2 = expense("2", 40, "b", {"a": 20, "b": 20})
    assert compute_net_by_user(group(A, B), [e1, e2], []) == {"a": 10.0, "b": -10.0}


def test_manual_settlement_zeroes_out():
    g = group(A, B)
    e = expense("e", 100, "a", {"a": 50, "b": 50})
    s = settlement("s", "b", "a", 50)
    assert compute_net_by_user(g, [e], [s]) == {"a": 0.0, "b": 0.0}


def test_other_groups_are_ignored():
    g = group(A, B)
    e = expense("e", 100, "a", {"a": 50, "b": 50}, gid="other")
    s = settlement("s", "b", "zz", 10, gid="other")
    assert compute_net_by_user(g, [e], [s]) == {"a": 0.0, "b": 0.0}


def test_unknown_member_raises():
    g = group(A, B)
    e = expense("e1", 90, "a", {"a": 30, "b": 30, "x": 30})
    with pytest.raises(UnknownMemberError) as info:
        compute_net_by_user(g, [e], [])
    assert info.value.member_id == "x"
    assert info.value.record_id == "e1"
    assert isinstance(info.value, DataIntegrityError)
    with pytest.raises(UnknownMemberError):
        suggest_settlements(g, [], [settlement("s", "q", "a", 5)])


def test_find_unknown_members():
    g = group(A, B)
    e = expense("e1", 90, "x", {"a": 45, "b": 45})
    s = settlement("s1", "a", "y", 5)
    problems = find_unknown_members(g, [e], [s])
    assert [(p.member_id, p.record_id) for p in problems] == [("x", "e1"), ("y", "s1")]
    assert find_unknown_members(g, [], []) == []


def test_debtors_and_creditors_sorted_by_size():
    d = Member("d", "D")
    g = group(A, B, C, d)
    e1 = expense("1", 100, "a", {"b": 70, "c": 30})
    e2 = expense("2", 20, "d", {"c": 20})
    out = suggest_settlements(g, [e1, e2], [])
    assert out == [
        Transfer("b", "a", 70.0),
        Transfer("c", "a", 30.0),
        Transfer("c", "d", 20.0),
    ]


def test_cent_balances_are_settled():
    g = group(A, B, C)
    e = expense("e", 0.01, "a", {"b": 0.01})
    assert suggest_settlements(g, [e], []) == [Transfer("b", "a", 0.01)]


def test_unbalanced_data_is_logged(caplog):
    g = group(A, B)
    # shares add up to less than the amount
    e = expense("e", 100, "a", {"b": 40})
    with caplog.at_level(logging.WARNING, logger="computations"):
        out = suggest_settlements(g, [e], [])
    assert out == [Transfer("b", "a", 40.0)]
    assert "left unsettled" in caplog.text
    assert "USD 60.00" in caplog.text


def _random_data(seed):
    rng = random.Random(seed)
    members = tuple(Member(f"m{i}", f"M{i}") for i in range(rng.randint(2, 7)))
    g = Group(id="g", name="G", currency="EUR", members=members)
    ids = [m.id for m in members]
    expenses = []
    for k in range(rng.randint(0, 12)):
        cents = rng.randint(1, 500_00)
        chosen = rng.sample(ids, rng.randint(1, len(ids)))
        alloc = allocate_proportional(chosen, [rng.randint(1, 5) for _ in chosen], cents / 100)
        expenses.append(expense(f"e{k}", cents / 100, rng.choice(ids), alloc))
    settlements = [
        settlement(f"s{k}", *rng.sample(ids, 2), rng.randint(1, 100_00) / 100)
        for k in range(rng.randint(0, 4))
    ]
    return g, expenses, settlements


@pytest.mark.parametrize("seed", range(30))
def test_zero_sum_and_settlement_idempotence(seed):
    g, expenses, settlements = _random_data(seed)

    net = compute_net_by_user(g, expenses, settlements)
    assert abs(sum(net.values())) < 1e-6
    assert sum(to_cents(v) for v in net.values()) == 0

    transfers = suggest_settlements(g, expenses, settlements)
    assert len(transfers) < len(g.members)
    for t in transfers:
        assert t.amount >= 0.01
        assert t.from_member != t.to_member

    extra = apply_transfers(g, transfers, settled_at="2024-06-01T00:00:00+00:00")
    after = compute_net_by_user(g, expenses, list(settlements) + extra)
    assert all(abs(v) < 0.01 for v in after.values())


def test_apply_transfers_builds_settlements():
    ids = iter(["s1", "s2"])
    out = apply_transfers(group(A, B), [Transfer("b", "a", 12.5)], "2024-01-01", lambda: next(ids))
    assert out == [Settlement("s1", "g", "b", "a", 12.5, "2024-01-01")]


def test_filter_expenses_by_date():
    from datetime import date
    e1 = expense("1", 10, "a", {"a": 10}, date="2024-01-05T09:00:00+00:00")
    e2 = expense("2", 10, "a", {"a": 10}, date="2024-02-05")
    assert filter_expenses_by_date([e1, e2], date(2024, 1, 5), date(2024, 1, 31)) == [e1]
    assert filter_expenses_by_date([e1, e2], None, None) == [e1, e2]


def test_compute_summary():
    g = group(A, B)
    e = expense("e", 100, "a", {"a": 50, "b": 50})
    s = settlement("s", "b", "a", 20)
    summary = compute_summary(g, [e], [s])
    assert summary["a"] == {"paid": 100.0, "consumed": 50.0, "sent": 0.0, "received": 20.0, "net": 30.0}
    assert summary["b"]["net"] == -30.0
    nets = compute_net_by_user(g, [e], [s])
    assert {m: v["net"] for m, v in summary.items()} == nets


def test_viewer_and_balance_text():
    you = Member("y", "You")
    g = group(A, you)
    assert viewer_member(g) == you
    assert viewer_member(group(A, B)) == A
    assert viewer_member(group()) is None
    assert balance_text(you, 50, "USD") == "You are owed USD 50.00"
    assert balance_text(you, -1234.5, "INR") == "You owe INR 1,234.50"
    assert balance_text(A, 5, "EUR") == "A is owed EUR 5.00"
    assert balance_text(A, -5, "EUR") == "A owes EUR 5.00"
    assert balance_text(A, 0.001, "EUR") == "All settled"


def test_balance_text_for_named_viewer():
    assert balance_text(A, 5, "EUR", viewer_name="a") == "You are owed EUR 5.00"
    assert balance_text(A, -5, "EUR", viewer_name=" A ") == "You owe EUR 5.00"
    assert balance_text(Member("y", "You"), 5, "EUR", viewer_name="A") == "You is owed EUR 5.00"
