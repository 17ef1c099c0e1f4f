from enum import Enum
from typing import Dict, Tuple

from app.ReqResModels.expensemodels import ExpenseStatus
from app.logic.exceptions import InvalidStateTransition

class WorkflowAction(str, Enum):
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"

# (current status, action) -> next status; every other pair is refused
TRANSITIONS: Dict[Tuple[ExpenseStatus, WorkflowAction], ExpenseStatus] = {
    (ExpenseStatus.DRAFT, WorkflowAction.SUBMIT): ExpenseStatus.PENDING_APPROVAL,
    (ExpenseStatus.REJECTED, WorkflowAction.SUBMIT): ExpenseStatus.PENDING_APPROVAL,
    (ExpenseStatus.PENDING_APPROVAL, WorkflowAction.APPROVE): ExpenseStatus.APPROVED,
    (ExpenseStatus.PENDING_APPROVAL, WorkflowAction.REJECT): ExpenseStatus.REJECTED,
}

EDITABLE_STATES = frozenset({ExpenseStatus.DRAFT, ExpenseStatus.REJECTED})
DELETABLE_STATES = frozenset({ExpenseStatus.DRAFT})


def next_status(current, action: WorkflowAction) -> ExpenseStatus:
    """Look up the status an action leads to, raising InvalidStateTransition if the table has no entry"""
    current = ExpenseStatus(current)
    target = TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidStateTransition(
            f"Cannot {action.value.lower()} an expense in status {current.value}",
            details={"current_status": current.value, "action": action.value},
        )
    return target


def can_transition(current, action: WorkflowAction) -> bool:
    return (ExpenseStatus(current), action) in TRANSITIONS


def ensure_editable(current) -> None:
    current = ExpenseStatus(current)
    if current not in EDITABLE_STATES:
        raise InvalidStateTransition(
            f"Expense in status {current.value} can no longer be modified",
            details={"current_status": current.value},
        )


def ensure_deletable(current) -> None:
    current = ExpenseStatus(current)
    if current not in DELETABLE_STATES:
        raise InvalidStateTransition(
            f"Only draft expenses can be deleted (status is {current.value})",
            details={"current_status": current.value},
        )
