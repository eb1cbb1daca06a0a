"""
Group data stores for SplitKit.

A store hands out consistent GroupData snapshots and records changes.
LocalStore keeps everything in one JSON file; RemoteStore talks to a hosted
backend through an already authenticated client. The balance computations
never see which one is in use.
"""
from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence

from computations import apply_transfers
from config import AppConfig, load_ledger, save_ledger
from errors import GroupNotFoundError, StorageError
from models import Expense, ExpenseShare, Group, GroupData, Ledger, Member, Settlement, Transfer
from utils import new_id, now_iso

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[GroupData], None]


class GroupStore(ABC):
    """Interface shared by local and remote stores"""

    def __init__(self):
        self._listeners: Dict[str, List[ChangeCallback]] = {}

    @abstractmethod
    def list_groups(self) -> List[Group]:
        ...

    @abstractmethod
    def create_group(self, name: str, currency: str, member_names: Sequence[str] = ()) -> Group:
        ...

    @abstractmethod
    def load_group_data(self, group_id: str) -> GroupData:
        ...

    @abstractmethod
    def save_expense(self, expense: Expense) -> Expense:
        ...

    @abstractmethod
    def delete_expense(self, group_id: str, expense_id: str) -> Optional[Expense]:
        ...

    @abstractmethod
    def record_settlements(self, group_id: str, transfers: Sequence[Transfer]) -> List[Settlement]:
        ...

    def subscribe_to_changes(self, group_id: str, callback: ChangeCallback) -> Callable[[], None]:
        """Call callback with fresh group data after every change. Returns unsubscribe."""
        self._listeners.setdefault(group_id, []).append(callback)

        def unsubscribe():
            callbacks = self._listeners.get(group_id, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _notify(self, group_id: str) -> None:
        callbacks = list(self._listeners.get(group_id, []))
        if not callbacks:
            return
        data = self.load_group_data(group_id)
        for cb in callbacks:
            cb(data)


class LocalStore(GroupStore):
    """Store backed by a single JSON file"""

    def __init__(self, path: str):
        super().__init__()
        self.path = path
        self.ledger = load_ledger(path)

    def _commit(self, ledger: Ledger) -> None:
        # in-memory state only moves once the file is written
        save_ledger(ledger, self.path)
        self.ledger = ledger

    def _group(self, group_id: str) -> Group:
        for g in self.ledger.groups:
            if g.id == group_id:
                return g
        raise GroupNotFoundError(group_id)

    def list_groups(self) -> List[Group]:
        return list(self.ledger.groups)

    def create_group(self, name: str, currency: str, member_names: Sequence[str] = ()) -> Group:
        members = tuple(Member(new_id(), n.strip()) for n in member_names if n.strip())
        group = Group(id=new_id(), name=name.strip(), currency=currency, members=members)
        self._commit(replace(self.ledger, groups=[group] + self.ledger.groups))
        logger.info("Created group %s with %d members", group.name, len(members))
        return group

    def load_group_data(self, group_id: str) -> GroupData:
        group = self._group(group_id)
        return GroupData(
            group=group,
            expenses=tuple(e for e in self.ledger.expenses if e.group_id == group_id),
            settlements=tuple(s for s in self.ledger.settlements if s.group_id == group_id),
        )

    def save_expense(self, expense: Expense) -> Expense:
        self._group(expense.group_id)
        # replace on same id within the group, so edits and undo both go through here
        kept = [
            e for e in self.ledger.expenses
            if not (e.id == expense.id and e.group_id == expense.group_id)
        ]
        self._commit(replace(self.ledger, expenses=[expense] + kept))
        self._notify(expense.group_id)
        return expense

    def delete_expense(self, group_id: str, expense_id: str) -> Optional[Expense]:
        self._group(group_id)
        removed = None
        for e in self.ledger.expenses:
            if e.id == expense_id and e.group_id == group_id:
                removed = e
        if removed is None:
            return None
        kept = [e for e in self.ledger.expenses if e is not removed]
        self._commit(replace(self.ledger, expenses=kept))
        self._notify(group_id)
        return removed

    def record_settlements(self, group_id: str, transfers: Sequence[Transfer]) -> List[Settlement]:
        records = apply_transfers(self._group(group_id), transfers)
        if not records:
            return []
        self._commit(replace(self.ledger, settlements=records + self.ledger.settlements))
        self._notify(group_id)
        return records


class RemoteStore(GroupStore):
    """
    Store synced through a hosted Postgres backend.

    client must expose the query builder of the backend's Python client:
    client.table(name).select(cols).eq(col, v).in_(col, values)
    .order(col, desc=True).execute().data, plus .insert(rows) and .delete().
    """

    def __init__(self, client, user_id: str):
        super().__init__()
        self.client = client
        self.user_id = user_id
        self._snapshots: Dict[str, GroupData] = {}

    def _rows(self, query) -> list:
        try:
            return list(query.execute().data or [])
        except Exception as ex:
            # client errors come from several libraries, normalise them here
            logger.error("Remote query failed: %s", ex)
            raise StorageError(f"Remote query failed: {ex}") from ex

    def _table(self, name: str):
        return self.client.table(name)

    def list_groups(self) -> List[Group]:
        mems = self._rows(self._table("group_members").select("group_id").eq("user_id", self.user_id))
        ids = [m["group_id"] for m in mems]
        if not ids:
            return []
        rows = self._rows(
            self._table("groups").select("id,name,currency").in_("id", ids).order("created_at", desc=True)
        )
        return [Group(id=r["id"], name=r["name"], currency=r["currency"]) for r in rows]

    def create_group(self, name: str, currency: str, member_names: Sequence[str] = ()) -> Group:
        # other members join through invites, names are ignored here
        rows = self._rows(
            self._table("groups").insert({"name": name.strip(), "currency": currency, "created_by": self.user_id})
        )
        if not rows:
            raise StorageError("Group insert returned no row")
        g = rows[0]
        self._rows(self._table("group_members").insert({"group_id": g["id"], "user_id": self.user_id, "role": "owner"}))
        return Group(id=g["id"], name=g["name"], currency=g["currency"], members=(Member(self.user_id, "You"),))

    def load_group_data(self, group_id: str) -> GroupData:
        meta = self._rows(self._table("groups").select("id,name,currency").eq("id", group_id))
        if not meta:
            raise GroupNotFoundError(group_id)

        mems = self._rows(self._table("group_members").select("user_id, role").eq("group_id", group_id))
        user_ids = [m["user_id"] for m in mems]
        profs = self._rows(self._table("profiles").select("id, display_name").in_("id", user_ids)) if user_ids else []
        names = {p["id"]: p.get("display_name") or p["id"][:6] for p in profs}
        members = tuple(Member(uid, names.get(uid, uid[:6])) for uid in user_ids)
        group = Group(id=group_id, name=meta[0]["name"], currency=meta[0]["currency"], members=members)

        exps = self._rows(
            self._table("expenses").select("id,title,amount,payer_id,expense_date,note,group_id")
            .eq("group_id", group_id).order("expense_date", desc=True)
        )
        exp_ids = [e["id"] for e in exps]
        shares = self._rows(
            self._table("expense_shares").select("expense_id,user_id,amount").in_("expense_id", exp_ids)
        ) if exp_ids else []
        expenses = tuple(
            Expense(
                id=e["id"],
                group_id=e["group_id"],
                title=e["title"],
                amount=float(e["amount"]),
                payer_id=e["payer_id"],
                date=e["expense_date"],
                note=e.get("note") or None,
                shares=tuple(
                    ExpenseShare(s["user_id"], float(s["amount"])) for s in shares if s["expense_id"] == e["id"]
                ),
            )
            for e in exps
        )

        setts = self._rows(
            self._table("settlements").select("id,group_id,from_user,to_user,amount,settled_at")
            .eq("group_id", group_id).order("settled_at", desc=True)
        )
        settlements = tuple(
            Settlement(
                id=s["id"], group_id=s["group_id"], from_member=s["from_user"],
                to_member=s["to_user"], amount=float(s["amount"]), date=s["settled_at"],
            )
            for s in setts
        )
        data = GroupData(group=group, expenses=expenses, settlements=settlements)
        self._snapshots[group_id] = data
        return data

    def save_expense(self, expense: Expense) -> Expense:
        rows = self._rows(self._table("expenses").insert({
            "group_id": expense.group_id,
            "title": expense.title,
            "amount": expense.amount,
            "payer_id": expense.payer_id,
            "expense_date": expense.date or now_iso(),
            "note": expense.note,
            "created_by": self.user_id,
        }))
        if not rows:
            raise StorageError("Expense insert returned no row")
        eid = rows[0]["id"]
        share_rows = [{"expense_id": eid, "user_id": s.member_id, "amount": s.amount} for s in expense.shares]
        if share_rows:
            self._rows(self._table("expense_shares").insert(share_rows))
        self._notify(expense.group_id)
        return Expense(
            id=eid, group_id=expense.group_id, title=expense.title, amount=expense.amount,
            payer_id=expense.payer_id, date=expense.date, shares=expense.shares, note=expense.note,
        )

    def delete_expense(self, group_id: str, expense_id: str) -> Optional[Expense]:
        # reload so expenses saved since the last snapshot are found
        current = self.load_group_data(group_id)
        removed = next((e for e in current.expenses if e.id == expense_id), None)
        self._rows(self._table("expense_shares").delete().eq("expense_id", expense_id))
        self._rows(self._table("expenses").delete().eq("id", expense_id))
        self._notify(group_id)
        return removed

    def record_settlements(self, group_id: str, transfers: Sequence[Transfer]) -> List[Settlement]:
        if not transfers:
            return []
        now = now_iso()
        rows = [
            {"group_id": group_id, "from_user": t.from_member, "to_user": t.to_member,
             "amount": t.amount, "settled_at": now, "created_by": self.user_id}
            for t in transfers
        ]
        inserted = self._rows(self._table("settlements").insert(rows))
        self._notify(group_id)
        return [
            Settlement(
                id=r["id"], group_id=group_id, from_member=r["from_user"],
                to_member=r["to_user"], amount=float(r["amount"]), date=r["settled_at"],
            )
            for r in inserted
        ]

    def refresh(self, group_id: str) -> bool:
        """
        Reload a group from the backend and notify subscribers if it changed.
        Meant to be called from a polling loop or a realtime change callback.
        """
        before = self._snapshots.get(group_id)
        after = self.load_group_data(group_id)
        if after == before:
            return False
        for cb in list(self._listeners.get(group_id, [])):
            cb(after)
        return True


def open_store(cfg: AppConfig, client=None, user_id: Optional[str] = None) -> GroupStore:
    """Pick the remote store when a signed-in client is available, else the local file"""
    if client is not None and user_id and cfg.cloud_configured:
        logger.info("Using remote store for user %s", user_id)
        return RemoteStore(client, user_id)
    logger.debug("Using local store at %s", cfg.db_path)
    return LocalStore(cfg.db_path)
