from dataclasses import dataclass
from typing import List, Sequence

from app.ReqResModels.expensemodels import ExpenseStatus
from app.ReqResModels.approvalmodels import ApprovalSequence, ExpenseApprovalStatus
from app.logic.rule_resolver import required_approvals

PENDING = ExpenseApprovalStatus.PENDING.value
APPROVED = ExpenseApprovalStatus.APPROVED.value
REJECTED = ExpenseApprovalStatus.REJECTED.value


@dataclass
class ApprovalProgress:
    approved_count: int
    rejected_count: int
    total: int
    required: int
    outcome: ExpenseStatus

    @property
    def approval_percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return round(self.approved_count * 100 / self.total, 2)


def aggregate_status(rows: Sequence, sequence, percentage: int) -> ApprovalProgress:
    """
    Outcome of one submission cycle.

    Any rejection rejects. SEQUENTIAL approves once every row approved;
    PARALLEL approves once approved * 100 >= percentage * total.
    """
    sequence = ApprovalSequence(sequence)
    total = len(rows)
    approved = sum(1 for r in rows if r.status == APPROVED)
    rejected = sum(1 for r in rows if r.status == REJECTED)

    if sequence == ApprovalSequence.SEQUENTIAL:
        required = total
    else:
        required = required_approvals(total, percentage)

    if rejected:
        outcome = ExpenseStatus.REJECTED
    elif total and approved >= required:
        outcome = ExpenseStatus.APPROVED
    else:
        outcome = ExpenseStatus.PENDING_APPROVAL

    return ApprovalProgress(approved, rejected, total, required, outcome)


def is_active(row, rows: Sequence, sequence) -> bool:
    """A pending row can be decided now; in SEQUENTIAL mode every earlier row must be approved"""
    if row.status != PENDING:
        return False
    if ApprovalSequence(sequence) == ApprovalSequence.PARALLEL:
        return True
    return all(r.status == APPROVED for r in rows if r.sequence_order < row.sequence_order)


def active_rows(rows: Sequence, sequence) -> List:
    return [r for r in rows if is_active(r, rows, sequence)]
