"""
CSV export and import functionality for SplitKit
"""
from __future__ import annotations
import csv
from typing import List, Optional

from models import Expense, ExpenseShare, Settlement
from utils import new_id

EXPENSE_COLUMNS = ['id', 'group_id', 'date', 'title', 'amount', 'payer_id', 'shares', 'note']
SETTLEMENT_COLUMNS = ['id', 'group_id', 'date', 'from_member', 'to_member', 'amount']


def _shares_to_str(shares) -> str:
    return ';'.join(f"{s.member_id}:{s.amount:.2f}" for s in shares)


def _shares_from_str(text: str) -> tuple:
    shares = []
    for pair in (text or '').split(';'):
        if ':' in pair:
            k, v = pair.split(':', 1)
            shares.append(ExpenseShare(k.strip(), float(v.strip())))
    return tuple(shares)


def export_expenses_to_csv(expenses: List[Expense], filepath: str) -> None:
    """
    Export expenses list to CSV file
    CSV columns: id, group_id, date, title, amount, payer_id, shares, note
    Shares are written as member:amount pairs separated by ';'
    """
    with open(filepath, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(EXPENSE_COLUMNS)
        for e in expenses:
            writer.writerow([
                e.id,
                e.group_id,
                e.date,
                e.title,
                f"{e.amount:.2f}",
                e.payer_id,
                _shares_to_str(e.shares),
                e.note or '',
            ])


def import_expenses_from_csv(filepath: str, group_id: Optional[str] = None) -> List[Expense]:
    """
    Import expenses list from CSV file.
    If group_id is given, every expense is copied into that group under a
    fresh id. Otherwise rows keep their id; rows without one get a fresh one.
    """
    expenses = []
    with open(filepath, 'r', encoding='utf-8') as f:
        reader = csv.DictReader(f)
        for row in reader:
            expenses.append(Expense(
                id=new_id() if group_id else (row.get('id') or new_id()),
                group_id=group_id or row['group_id'],
                title=row.get('title', ''),
                amount=float(row['amount']),
                payer_id=row['payer_id'],
                date=row['date'],
                shares=_shares_from_str(row.get('shares', '')),
                note=row.get('note') or None,
            ))
    return expenses


def export_settlements_to_csv(settlements: List[Settlement], filepath: str) -> None:
    """Export recorded settlements to CSV file"""
    with open(filepath, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(SETTLEMENT_COLUMNS)
        for s in settlements:
            writer.writerow([s.id, s.group_id, s.date, s.from_member, s.to_member, f"{s.amount:.2f}"])
