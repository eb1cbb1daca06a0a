"""
Data models for SplitKit
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class Member:
    """Group member"""
    id: str
    name: str


@dataclass(frozen=True)
class Group:
    """Group of members sharing expenses"""
    id: str
    name: str
    currency: str  # ISO 4217 code, e.g. "USD"
    members: Tuple[Member, ...] = ()

    def member_ids(self) -> List[str]:
        return [m.id for m in self.members]

    def find_member(self, member_id: str) -> Optional[Member]:
        for m in self.members:
            if m.id == member_id:
                return m
        return None


@dataclass(frozen=True)
class ExpenseShare:
    """Amount a single member owes for an expense"""
    member_id: str
    amount: float


@dataclass(frozen=True)
class Expense:
    """Single expense paid by one member and shared by several"""
    id: str
    group_id: str
    title: str
    amount: float
    payer_id: str
    date: str  # ISO-8601 timestamp
    shares: Tuple[ExpenseShare, ...] = ()
    note: Optional[str] = None


@dataclass(frozen=True)
class Settlement:
    """Payment made between two members outside of expenses"""
    id: str
    group_id: str
    from_member: str  # payer
    to_member: str  # receiver
    amount: float
    date: str


@dataclass(frozen=True)
class Transfer:
    """Suggested payment that moves balances towards zero"""
    from_member: str
    to_member: str
    amount: float


@dataclass(frozen=True)
class GroupData:
    """Consistent snapshot of one group's records"""
    group: Group
    expenses: Tuple[Expense, ...] = ()
    settlements: Tuple[Settlement, ...] = ()


@dataclass
class Ledger:
    """Complete local database containing all groups"""
    groups: List[Group] = field(default_factory=list)
    expenses: List[Expense] = field(default_factory=list)
    settlements: List[Settlement] = field(default_factory=list)
    version: int = 1
