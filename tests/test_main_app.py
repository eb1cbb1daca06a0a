import pytest

import storage
from config import AppConfig
from errors import InvalidExpenseError, StorageError, UnknownMemberError
from main_app import SplitKitApp
from models import Expense, ExpenseShare, Group
from storage import LocalStore


class FailingStore(LocalStore):
    def save_expense(self, expense):
        raise StorageError("disk full")

    def record_settlements(self, group_id, transfers):
        raise StorageError("disk full")


@pytest.fixture
def messages():
    return []


@pytest.fixture
def app(tmp_path, messages):
    cfg = AppConfig(data_dir=str(tmp_path))
    return SplitKitApp(LocalStore(cfg.db_path), cfg, notify=messages.append)


def demo(app):
    g = app.groups()[0]
    ids = {m.name: m.id for m in g.members}
    return g, ids


def test_overview_of_demo(app):
    g, ids = demo(app)
    view = app.overview(g.id)
    assert view.nets == {ids["You"]: -200.0, ids["Aarav"]: 1300.0, ids["Mira"]: -1100.0}
    assert view.status == "You owe INR 200.00"
    assert [(t.from_member, t.to_member, t.amount) for t in view.suggestions] == [
        (ids["Mira"], ids["Aarav"], 1100.0),
        (ids["You"], ids["Aarav"], 200.0),
    ]


def test_add_expense_modes(app):
    g, ids = demo(app)
    e = app.add_expense(g.id, " Dinner ", 100, ids["Mira"], note="  ")
    assert e.title == "Dinner"
    assert e.note is None
    assert sorted(s.amount for s in e.shares) == [33.33, 33.33, 33.34]

    e = app.add_expense(g.id, "Boat", 50, ids["You"], mode="weights", values={ids["You"]: 3, ids["Mira"]: 1})
    by = {s.member_id: s.amount for s in e.shares}
    assert by == {ids["You"]: 30.0, ids["Aarav"]: 10.0, ids["Mira"]: 10.0}

    e = app.add_expense(g.id, "Snacks", 10, ids["You"], mode="amounts",
                        values={ids["You"]: 4, ids["Aarav"]: 6})
    assert {s.member_id: s.amount for s in e.shares}[ids["Mira"]] == 0.0
    assert len(app.overview(g.id).expenses) == 5


@pytest.mark.parametrize("kwargs,message", [
    ({"title": " "}, "Title"),
    ({"amount": 0}, "positive"),
    ({"amount": 0.004}, "positive"),
    ({"payer_id": "ghost"}, "Payer"),
    ({"mode": "shares"}, "split mode"),
    ({"mode": "amounts", "values": {}}, "add up"),
])
def test_add_expense_validation(app, kwargs, message):
    g, ids = demo(app)
    args = {"title": "T", "amount": 10, "payer_id": ids["You"], **kwargs}
    with pytest.raises(InvalidExpenseError, match=message):
        app.add_expense(g.id, **args)


def test_values_for_unknown_member(app):
    g, ids = demo(app)
    with pytest.raises(InvalidExpenseError, match="ghost"):
        app.add_expense(g.id, "T", 10, ids["You"], mode="weights", values={"ghost": 1})


def test_delete_and_undo(app, messages):
    g, _ = demo(app)
    victim = app.overview(g.id).expenses[0]
    removed = app.delete_expense(g.id, victim.id)
    assert removed == victim
    assert "Expense deleted" in messages
    assert len(app.overview(g.id).expenses) == 1
    assert app.undo_delete(removed)
    assert len(app.overview(g.id).expenses) == 2
    assert app.delete_expense(g.id, "nope") is None


def test_settle_up(app, messages):
    g, _ = demo(app)
    records = app.settle_up(g.id)
    assert len(records) == 2
    view = app.overview(g.id)
    assert set(view.nets.values()) == {0.0}
    assert view.status == "All settled"
    assert app.settle_up(g.id) == []
    assert "All settled. Nothing to pay." in messages


def test_record_payment(app):
    g, ids = demo(app)
    s = app.record_payment(g.id, ids["You"], ids["Aarav"], 200)
    assert s.amount == 200.0
    assert app.overview(g.id).nets[ids["You"]] == 0.0
    with pytest.raises(ValueError):
        app.record_payment(g.id, ids["You"], ids["You"], 5)
    with pytest.raises(ValueError):
        app.record_payment(g.id, ids["You"], "ghost", 5)


def test_create_group(app, messages):
    g = app.create_group("Flat", member_names=["Ann", "Bo"])
    assert g.currency == "USD"
    assert "Created Flat" in messages
    with pytest.raises(ValueError):
        app.create_group("Flat", currency="XYZ")
    with pytest.raises(ValueError):
        app.create_group("  ")


def test_storage_failures_are_reported(tmp_path, messages):
    cfg = AppConfig(data_dir=str(tmp_path))
    app = SplitKitApp(FailingStore(cfg.db_path), cfg, notify=messages.append)
    g, ids = demo(app)
    assert app.add_expense(g.id, "T", 10, ids["You"]) is None
    assert app.settle_up(g.id) is None
    assert app.overview("missing") is None
    assert messages[0] == "Failed to add: disk full"
    assert messages[1] == "Failed to settle: disk full"
    assert messages[2].startswith("Failed to load group")


def test_unknown_member_in_stored_data_raises(app):
    g, ids = demo(app)
    bad = Expense("bad", g.id, "x", 10.0, ids["You"], "2024-01-01", (ExpenseShare("ghost", 10.0),))
    app.store.save_expense(bad)
    with pytest.raises(UnknownMemberError):
        app.overview(g.id)


def test_export_and_import(app, tmp_path, messages):
    g, ids = demo(app)
    path = str(tmp_path / "out.csv")
    assert app.export_csv(g.id, path)
    assert app.export_excel(g.id, str(tmp_path / "out.xlsx"))

    other = app.create_group("Copy", "INR", ["You", "Aarav", "Mira"])
    assert app.import_csv(other.id, path) == []
    assert "Skipped 2 invalid expenses" in messages

    # importing into the same group appends copies
    assert len(app.import_csv(g.id, path)) == 2
    assert len(app.overview(g.id).expenses) == 4
    assert app.import_csv(g.id, str(tmp_path / "missing.csv")) is None


def test_import_into_group_with_same_members_keeps_source(app, tmp_path, messages):
    g, _ = demo(app)
    before = app.overview(g.id).expenses
    path = str(tmp_path / "out.csv")
    assert app.export_csv(g.id, path)

    app.store.ledger.groups.append(Group("clone", "Clone", g.currency, g.members))
    imported = app.import_csv("clone", path)
    assert len(imported) == 2
    assert "Imported 2 expenses" in messages
    assert {e.id for e in imported}.isdisjoint(e.id for e in before)
    assert app.overview("clone").nets == app.overview(g.id).nets

    assert app.overview(g.id).expenses == before
    reopened = LocalStore(app.config.db_path)
    assert len(reopened.load_group_data(g.id).expenses) == 2


def test_failed_save_leaves_no_trace(app, messages, monkeypatch):
    g, ids = demo(app)

    def fail(ledger, path):
        raise StorageError("disk full")

    monkeypatch.setattr(storage, "save_ledger", fail)
    assert app.add_expense(g.id, "Ferry", 60, ids["Mira"]) is None
    assert messages[-1] == "Failed to add: disk full"
    assert len(app.overview(g.id).expenses) == 2
    assert app.settle_up(g.id) is None
    assert app.overview(g.id).settlements == ()

    monkeypatch.undo()
    assert app.add_expense(g.id, "Ferry", 60, ids["Mira"]) is not None
    reopened = LocalStore(app.config.db_path)
    assert [e.title for e in reopened.load_group_data(g.id).expenses].count("Ferry") == 1
    assert len(reopened.load_group_data(g.id).expenses) == 3
