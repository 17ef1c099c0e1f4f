"""
Company-scoped permission checks.

Every check runs over the caller's (role, company_id, id) and the target's
company and owner. A target in another company is always reported as missing;
a same-company refusal is Forbidden; a target in the wrong lifecycle state is a
business rule violation.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, FrozenSet, Optional, Tuple
import logging

from app.ReqResModels.usermodels import UserRole
from app.ReqResModels.expensemodels import ExpenseStatus
from app.ReqResModels.approvalmodels import ExpenseApprovalStatus
from app.logic.state_machine import EDITABLE_STATES, DELETABLE_STATES
from app.logic.exceptions import (
    BaseCustomError,
    AuthorizationError,
    NotFoundError,
    ExpenseNotFoundError,
    ApprovalNotFoundError,
    CompanyNotFoundError,
    ApprovalAlreadyProcessedError,
    InvalidStateTransition,
)

logger = logging.getLogger(__name__)

APPROVER_ROLES = frozenset({UserRole.MANAGER, UserRole.ADMIN})


class ResourceKind(str, Enum):
    EXPENSE = "expense"
    APPROVAL = "approval"
    COMPANY = "company"


class Action(str, Enum):
    VIEW = "view"
    UPDATE = "update"
    DELETE = "delete"
    SUBMIT = "submit"
    MANAGE_RECEIPT = "manage_receipt"
    APPROVE = "approve"
    REJECT = "reject"
    MANAGE = "manage"


@dataclass(frozen=True)
class Caller:
    id: int
    role: UserRole
    company_id: int

    @classmethod
    def from_user(cls, user) -> "Caller":
        return cls(id=user.id, role=UserRole(user.role), company_id=user.company_id)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass(frozen=True)
class ExpenseTarget:
    id: int
    company_id: int
    submitter_id: int
    status: ExpenseStatus
    submitter_manager_id: Optional[int] = None
    approver_ids: FrozenSet[int] = field(default_factory=frozenset)

    @classmethod
    def from_expense(cls, expense) -> "ExpenseTarget":
        submitter = expense.submitter
        return cls(
            id=expense.id,
            company_id=expense.company_id,
            submitter_id=expense.submitter_id,
            status=ExpenseStatus(expense.status),
            submitter_manager_id=submitter.manager_id if submitter else None,
            approver_ids=frozenset(a.approver_id for a in expense.approvals),
        )


@dataclass(frozen=True)
class ApprovalTarget:
    id: int
    company_id: int
    approver_id: int
    status: ExpenseApprovalStatus

    @classmethod
    def from_approval(cls, approval) -> "ApprovalTarget":
        return cls(
            id=approval.id,
            company_id=approval.expense.company_id,
            approver_id=approval.approver_id,
            status=ExpenseApprovalStatus(approval.status),
        )


@dataclass(frozen=True)
class CompanyTarget:
    company_id: int


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None
    error: Optional[BaseCustomError] = None

    @classmethod
    def allow(cls) -> "AccessDecision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str, error: BaseCustomError) -> "AccessDecision":
        return cls(False, reason, error)


class Permission:
    """A single (resource kind, action) rule"""
    not_found_error = NotFoundError

    def check(self, caller: Caller, target) -> AccessDecision:
        if caller.company_id != target.company_id:
            return AccessDecision.deny(
                "different company",
                self.not_found_error(f"{self.describe(target)} not found"),
            )
        return self.evaluate(caller, target)

    def evaluate(self, caller: Caller, target) -> AccessDecision:
        raise NotImplementedError

    def describe(self, target) -> str:
        return "Resource"


_REGISTRY: Dict[Tuple[ResourceKind, Action], Permission] = {}


def register(kind: ResourceKind, *actions: Action) -> Callable:
    def decorator(cls):
        instance = cls()
        for action in actions:
            _REGISTRY[(kind, action)] = instance
        return cls
    return decorator


class _ExpensePermission(Permission):
    not_found_error = ExpenseNotFoundError

    def describe(self, target) -> str:
        return f"Expense with ID {target.id}"


@register(ResourceKind.EXPENSE, Action.VIEW)
class ViewExpensePermission(_ExpensePermission):
    def evaluate(self, caller, target):
        if caller.id == target.submitter_id or caller.is_admin:
            return AccessDecision.allow()
        if caller.role == UserRole.MANAGER and target.submitter_manager_id == caller.id:
            return AccessDecision.allow()
        if caller.id in target.approver_ids:
            return AccessDecision.allow()
        return AccessDecision.deny(
            "not allowed to view", AuthorizationError("You are not allowed to view this expense")
        )


class _SubmitterOnlyPermission(_ExpensePermission):
    allowed_states: FrozenSet[ExpenseStatus] = EDITABLE_STATES
    verb = "modify"

    def evaluate(self, caller, target):
        if caller.id != target.submitter_id:
            return AccessDecision.deny(
                "not the submitter", AuthorizationError(f"Only the submitter can {self.verb} this expense")
            )
        if target.status not in self.allowed_states:
            allowed = ", ".join(sorted(s.value for s in self.allowed_states))
            return AccessDecision.deny(
                "wrong status",
                InvalidStateTransition(
                    f"Cannot {self.verb} an expense in status {target.status.value}",
                    details={"current_status": target.status.value, "allowed_statuses": allowed},
                ),
            )
        return AccessDecision.allow()


@register(ResourceKind.EXPENSE, Action.UPDATE)
class UpdateExpensePermission(_SubmitterOnlyPermission):
    verb = "update"


@register(ResourceKind.EXPENSE, Action.SUBMIT)
class SubmitExpensePermission(_SubmitterOnlyPermission):
    verb = "submit"


@register(ResourceKind.EXPENSE, Action.MANAGE_RECEIPT)
class ManageReceiptPermission(_SubmitterOnlyPermission):
    verb = "change the receipt of"


@register(ResourceKind.EXPENSE, Action.DELETE)
class DeleteExpensePermission(_SubmitterOnlyPermission):
    allowed_states = DELETABLE_STATES
    verb = "delete"


@register(ResourceKind.APPROVAL, Action.VIEW, Action.APPROVE, Action.REJECT)
class DecideApprovalPermission(Permission):
    not_found_error = ApprovalNotFoundError

    def describe(self, target) -> str:
        return f"Approval with ID {target.id}"

    def evaluate(self, caller, target):
        # Rows assigned to someone else are reported as missing
        if caller.id != target.approver_id:
            return AccessDecision.deny(
                "not authorized approver", ApprovalNotFoundError(f"{self.describe(target)} not found")
            )
        if caller.role not in APPROVER_ROLES:
            return AccessDecision.deny(
                "not authorized approver", AuthorizationError("Only managers and admins can decide approvals")
            )
        if target.status != ExpenseApprovalStatus.PENDING:
            return AccessDecision.deny(
                "already processed",
                ApprovalAlreadyProcessedError(
                    f"Approval {target.id} has already been processed",
                    details={"approval_status": target.status.value},
                ),
            )
        return AccessDecision.allow()


@register(ResourceKind.COMPANY, Action.VIEW)
class ViewCompanyPermission(Permission):
    not_found_error = CompanyNotFoundError

    def describe(self, target) -> str:
        return f"Company with ID {target.company_id}"

    def evaluate(self, caller, target):
        return AccessDecision.allow()


@register(ResourceKind.COMPANY, Action.MANAGE)
class ManageCompanyPermission(ViewCompanyPermission):
    def evaluate(self, caller, target):
        if not caller.is_admin:
            return AccessDecision.deny(
                "admin only", AuthorizationError("Only company admins can perform this action")
            )
        return AccessDecision.allow()


def authorize(caller: Caller, kind: ResourceKind, action: Action, target) -> AccessDecision:
    permission = _REGISTRY.get((kind, action))
    if permission is None:
        return AccessDecision.deny(
            "no permission registered",
            AuthorizationError(f"Action '{action.value}' is not permitted on {kind.value}"),
        )
    return permission.check(caller, target)


def require(caller: Caller, kind: ResourceKind, action: Action, target) -> None:
    """Raise the decision's typed error when access is denied"""
    decision = authorize(caller, kind, action, target)
    if not decision.allowed:
        logger.info(
            f"Denied {action.value} on {kind.value} for user {caller.id}: {decision.reason}"
        )
        raise decision.error
