"""
Exceptions raised by SplitKit
"""
from __future__ import annotations
from typing import Optional


class SplitKitError(Exception):
    """Base class for all SplitKit errors"""


class DataIntegrityError(SplitKitError):
    """Records of a group do not agree with each other"""


class UnknownMemberError(DataIntegrityError):
    """A record references a member that is not part of the group"""

    def __init__(self, member_id: str, record_id: Optional[str] = None):
        self.member_id = member_id
        self.record_id = record_id
        where = f" (referenced by {record_id})" if record_id else ""
        super().__init__(f"Unknown member {member_id!r}{where}")


class InvalidExpenseError(SplitKitError):
    """A new expense failed validation"""


class StorageError(SplitKitError):
    """Loading or saving group data failed"""


class GroupNotFoundError(StorageError):
    def __init__(self, group_id: str):
        self.group_id = group_id
        super().__init__(f"Group not found: {group_id}")
