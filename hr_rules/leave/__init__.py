"""Leave module — policies, balance ledger, accrual engine and request workflow."""

from hr_rules.leave.models import (
    LeaveBalance,
    LeaveLedgerEntry,
    LeavePolicy,
    LeavePolicyAssignment,
    LeaveRequest,
)

__all__ = [
    "LeavePolicy",
    "LeavePolicyAssignment",
    "LeaveBalance",
    "LeaveLedgerEntry",
    "LeaveRequest",
]
