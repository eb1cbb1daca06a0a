"""
Application service for SplitKit: the operations a front end calls.

Storage failures never escape from here; they are reported through the
notifier and the method returns None (or False).
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from allocation import SPLIT_MODES, allocate_by_mode, build_shares, shares_match
from computations import (
    balance_text,
    compute_net_by_user,
    suggest_settlements,
    viewer_member,
)
from config import AppConfig
from csv_handler import export_expenses_to_csv, import_expenses_from_csv
from errors import InvalidExpenseError, StorageError
from excel_export import export_excel
from models import Expense, Group, Settlement, Transfer
from storage import GroupStore
from utils import format_money, new_id, now_iso, to_cents

logger = logging.getLogger(__name__)

Notifier = Callable[[str], None]


@dataclass(frozen=True)
class GroupOverview:
    """Everything the group screen shows"""
    group: Group
    nets: Dict[str, float]
    suggestions: Tuple[Transfer, ...]
    expenses: Tuple[Expense, ...]  # newest first
    settlements: Tuple[Settlement, ...]
    status: str


class SplitKitApp:
    """Ties a store, the config and a notifier together"""

    def __init__(self, store: GroupStore, config: AppConfig, notify: Optional[Notifier] = None):
        self.store = store
        self.config = config
        self.notify = notify or (lambda msg: logger.info("%s", msg))

    # ---------- Groups ----------
    def groups(self) -> Optional[List[Group]]:
        try:
            return self.store.list_groups()
        except StorageError as ex:
            self.notify(f"Failed to load groups: {ex}")
            return None

    def create_group(
        self,
        name: str,
        currency: Optional[str] = None,
        member_names: Sequence[str] = (),
    ) -> Optional[Group]:
        """Create a group; local groups get their members right away"""
        if not name.strip():
            raise ValueError("Group name is required")
        currency = currency or self.config.default_currency
        if currency not in self.config.currencies:
            raise ValueError(f"Unsupported currency {currency!r}")
        try:
            group = self.store.create_group(name, currency, member_names)
        except StorageError as ex:
            self.notify(f"Failed to create group: {ex}")
            return None
        self.notify(f"Created {group.name}")
        return group

    def overview(self, group_id: str) -> Optional[GroupOverview]:
        try:
            data = self.store.load_group_data(group_id)
        except StorageError as ex:
            self.notify(f"Failed to load group: {ex}")
            return None
        group = data.group
        nets = compute_net_by_user(group, data.expenses, data.settlements)
        you = viewer_member(group)
        status = balance_text(you, nets.get(you.id, 0.0), group.currency) if you else "All settled"
        return GroupOverview(
            group=group,
            nets=nets,
            suggestions=tuple(suggest_settlements(group, data.expenses, data.settlements)),
            expenses=tuple(sorted(data.expenses, key=lambda e: e.date, reverse=True)),
            settlements=data.settlements,
            status=status,
        )

    # ---------- Expenses ----------
    def build_expense(
        self,
        group: Group,
        title: str,
        amount: float,
        payer_id: str,
        mode: str = "equal",
        values: Optional[Mapping[str, float]] = None,
        note: Optional[str] = None,
        when: Optional[str] = None,
    ) -> Expense:
        """Validate input and split the amount into shares"""
        if not title.strip():
            raise InvalidExpenseError("Title is required")
        if to_cents(amount) <= 0:
            raise InvalidExpenseError("Amount must be positive")
        if group.find_member(payer_id) is None:
            raise InvalidExpenseError(f"Payer {payer_id!r} is not in {group.name}")
        if mode not in SPLIT_MODES:
            raise InvalidExpenseError(f"Unknown split mode {mode!r}")
        unknown = set(values or {}) - set(group.member_ids())
        if unknown:
            raise InvalidExpenseError(f"Not in {group.name}: {', '.join(sorted(unknown))}")

        shares = build_shares(allocate_by_mode(mode, group.member_ids(), amount, values))
        if not shares_match(amount, shares):
            raise InvalidExpenseError(
                f"Shares must add up to {format_money(amount, group.currency)}"
            )
        return Expense(
            id=new_id(),
            group_id=group.id,
            title=title.strip(),
            amount=float(amount),
            payer_id=payer_id,
            date=when or now_iso(),
            shares=shares,
            note=(note or "").strip() or None,
        )

    def add_expense(
        self,
        group_id: str,
        title: str,
        amount: float,
        payer_id: str,
        mode: str = "equal",
        values: Optional[Mapping[str, float]] = None,
        note: Optional[str] = None,
        when: Optional[str] = None,
    ) -> Optional[Expense]:
        """
        Split and save a new expense.
        Raises InvalidExpenseError on bad input; returns None if saving failed.
        """
        try:
            group = self.store.load_group_data(group_id).group
        except StorageError as ex:
            self.notify(f"Failed to add: {ex}")
            return None
        expense = self.build_expense(group, title, amount, payer_id, mode, values, note, when)
        try:
            saved = self.store.save_expense(expense)
        except StorageError as ex:
            self.notify(f"Failed to add: {ex}")
            return None
        logger.debug("Added expense %s to %s", saved.id, group_id)
        return saved

    def delete_expense(self, group_id: str, expense_id: str) -> Optional[Expense]:
        """Delete an expense and return it so it can be restored"""
        try:
            removed = self.store.delete_expense(group_id, expense_id)
        except StorageError as ex:
            self.notify(f"Failed to delete: {ex}")
            return None
        if removed is not None:
            self.notify("Expense deleted")
        return removed

    def undo_delete(self, expense: Expense) -> bool:
        try:
            self.store.save_expense(expense)
        except StorageError as ex:
            self.notify(f"Failed to restore: {ex}")
            return False
        self.notify("Expense restored")
        return True

    # ---------- Settling ----------
    def settle_up(self, group_id: str) -> Optional[List[Settlement]]:
        """Record every suggested transfer as a settlement"""
        view = self.overview(group_id)
        if view is None:
            return None
        if not view.suggestions:
            self.notify("All settled. Nothing to pay.")
            return []
        try:
            records = self.store.record_settlements(group_id, view.suggestions)
        except StorageError as ex:
            self.notify(f"Failed to settle: {ex}")
            return None
        self.notify(f"Recorded {len(records)} settlements")
        return records

    def record_payment(self, group_id: str, from_member: str, to_member: str, amount: float) -> Optional[Settlement]:
        """Record a single manual payment between two members"""
        if from_member == to_member:
            raise ValueError("A member cannot pay themselves")
        if to_cents(amount) <= 0:
            raise ValueError("Amount must be positive")
        try:
            group = self.store.load_group_data(group_id).group
            for mid in (from_member, to_member):
                if group.find_member(mid) is None:
                    raise ValueError(f"{mid!r} is not in {group.name}")
            records = self.store.record_settlements(
                group_id, [Transfer(from_member, to_member, float(amount))]
            )
        except StorageError as ex:
            self.notify(f"Failed to record payment: {ex}")
            return None
        return records[0] if records else None

    # ---------- Import / export ----------
    def export_excel(self, group_id: str, filepath: str,
                     start: Optional[date] = None, end: Optional[date] = None) -> bool:
        try:
            data = self.store.load_group_data(group_id)
            export_excel(data, filepath, start, end)
        except (StorageError, OSError) as ex:
            self.notify(f"Export failed: {ex}")
            return False
        self.notify(f"Exported: {filepath}")
        return True

    def export_csv(self, group_id: str, filepath: str) -> bool:
        try:
            data = self.store.load_group_data(group_id)
            if not data.expenses:
                self.notify("No expenses to export.")
                return False
            export_expenses_to_csv(list(data.expenses), filepath)
        except (StorageError, OSError) as ex:
            self.notify(f"Export failed: {ex}")
            return False
        self.notify(f"Exported {len(data.expenses)} expenses to {filepath}")
        return True

    def import_csv(self, group_id: str, filepath: str) -> Optional[List[Expense]]:
        """
        Append expenses from a CSV file to a group.
        Expenses whose shares do not add up or that name unknown members
        are skipped and reported.
        """
        try:
            group = self.store.load_group_data(group_id).group
            rows = import_expenses_from_csv(filepath, group_id)
        except (StorageError, OSError, KeyError, ValueError) as ex:
            self.notify(f"Import failed: {ex}")
            return None

        known = set(group.member_ids())
        imported = []
        skipped = 0
        for e in rows:
            referenced = {e.payer_id} | {s.member_id for s in e.shares}
            if not referenced <= known or not shares_match(e.amount, e.shares):
                skipped += 1
                continue
            try:
                imported.append(self.store.save_expense(e))
            except StorageError as ex:
                self.notify(f"Import failed: {ex}")
                return None
        if skipped:
            self.notify(f"Skipped {skipped} invalid expenses")
        self.notify(f"Imported {len(imported)} expenses")
        return imported
