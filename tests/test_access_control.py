"""
Unit tests for the company-scoped permission checks.

These run over plain targets, so no database is involved.
"""
import pytest

from app.logic.access_control import (
    Action,
    ApprovalTarget,
    Caller,
    CompanyTarget,
    ExpenseTarget,
    ResourceKind,
    authorize,
    require,
)
from app.logic.exceptions import (
    ApprovalAlreadyProcessedError,
    ApprovalNotFoundError,
    AuthorizationError,
    CompanyNotFoundError,
    ExpenseNotFoundError,
    InvalidStateTransition,
)
from app.ReqResModels.approvalmodels import ExpenseApprovalStatus
from app.ReqResModels.expensemodels import ExpenseStatus
from app.ReqResModels.usermodels import UserRole

COMPANY = 1
OTHER_COMPANY = 2

SUBMITTER = Caller(id=10, role=UserRole.EMPLOYEE, company_id=COMPANY)
MANAGER = Caller(id=20, role=UserRole.MANAGER, company_id=COMPANY)
OTHER_MANAGER = Caller(id=21, role=UserRole.MANAGER, company_id=COMPANY)
ADMIN = Caller(id=30, role=UserRole.ADMIN, company_id=COMPANY)
COWORKER = Caller(id=11, role=UserRole.EMPLOYEE, company_id=COMPANY)
OUTSIDER = Caller(id=99, role=UserRole.ADMIN, company_id=OTHER_COMPANY)


def expense(status=ExpenseStatus.DRAFT, approver_ids=()):
    return ExpenseTarget(
        id=5,
        company_id=COMPANY,
        submitter_id=SUBMITTER.id,
        status=status,
        submitter_manager_id=MANAGER.id,
        approver_ids=frozenset(approver_ids),
    )


def approval(approver_id=MANAGER.id, status=ExpenseApprovalStatus.PENDING, company_id=COMPANY):
    return ApprovalTarget(id=7, company_id=company_id, approver_id=approver_id, status=status)


# ---------------------------------------------------------------------------
# Expense visibility
# ---------------------------------------------------------------------------

class TestViewExpense:
    @pytest.mark.parametrize("caller", [SUBMITTER, MANAGER, ADMIN])
    def test_submitter_manager_and_admin_can_view(self, caller):
        assert authorize(caller, ResourceKind.EXPENSE, Action.VIEW, expense()).allowed

    def test_assigned_approver_can_view(self):
        target = expense(status=ExpenseStatus.PENDING_APPROVAL, approver_ids={OTHER_MANAGER.id})
        assert authorize(OTHER_MANAGER, ResourceKind.EXPENSE, Action.VIEW, target).allowed

    def test_unrelated_manager_is_forbidden(self):
        with pytest.raises(AuthorizationError):
            require(OTHER_MANAGER, ResourceKind.EXPENSE, Action.VIEW, expense())

    def test_coworker_is_forbidden(self):
        decision = authorize(COWORKER, ResourceKind.EXPENSE, Action.VIEW, expense())
        assert not decision.allowed
        assert isinstance(decision.error, AuthorizationError)

    def test_other_company_looks_missing(self):
        # Even an admin of another company must not learn the expense exists
        with pytest.raises(ExpenseNotFoundError):
            require(OUTSIDER, ResourceKind.EXPENSE, Action.VIEW, expense())


# ---------------------------------------------------------------------------
# Submitter-only actions
# ---------------------------------------------------------------------------

class TestSubmitterActions:
    @pytest.mark.parametrize("action", [Action.UPDATE, Action.SUBMIT, Action.MANAGE_RECEIPT])
    @pytest.mark.parametrize("status", [ExpenseStatus.DRAFT, ExpenseStatus.REJECTED])
    def test_submitter_may_act_on_editable_expenses(self, action, status):
        require(SUBMITTER, ResourceKind.EXPENSE, action, expense(status=status))

    @pytest.mark.parametrize("action", [Action.UPDATE, Action.SUBMIT, Action.DELETE, Action.MANAGE_RECEIPT])
    def test_admin_is_not_the_submitter(self, action):
        with pytest.raises(AuthorizationError):
            require(ADMIN, ResourceKind.EXPENSE, action, expense())

    @pytest.mark.parametrize("status", [ExpenseStatus.PENDING_APPROVAL, ExpenseStatus.APPROVED])
    def test_locked_statuses_are_business_rule_violations(self, status):
        with pytest.raises(InvalidStateTransition) as exc:
            require(SUBMITTER, ResourceKind.EXPENSE, Action.UPDATE, expense(status=status))
        assert exc.value.status_code == 422

    def test_rejected_expense_cannot_be_deleted(self):
        with pytest.raises(InvalidStateTransition):
            require(SUBMITTER, ResourceKind.EXPENSE, Action.DELETE, expense(status=ExpenseStatus.REJECTED))

    def test_cross_company_check_runs_before_state_check(self):
        with pytest.raises(ExpenseNotFoundError):
            require(OUTSIDER, ResourceKind.EXPENSE, Action.DELETE, expense(status=ExpenseStatus.APPROVED))


# ---------------------------------------------------------------------------
# Approval decisions
# ---------------------------------------------------------------------------

class TestDecideApproval:
    @pytest.mark.parametrize("action", [Action.APPROVE, Action.REJECT])
    def test_assigned_pending_approver_is_allowed(self, action):
        require(MANAGER, ResourceKind.APPROVAL, action, approval())

    def test_another_approvers_row_looks_missing(self):
        with pytest.raises(ApprovalNotFoundError):
            require(OTHER_MANAGER, ResourceKind.APPROVAL, Action.APPROVE, approval())

    def test_employee_assignee_is_forbidden(self):
        target = approval(approver_id=COWORKER.id)
        with pytest.raises(AuthorizationError):
            require(COWORKER, ResourceKind.APPROVAL, Action.APPROVE, target)

    @pytest.mark.parametrize("status", [ExpenseApprovalStatus.APPROVED, ExpenseApprovalStatus.REJECTED])
    def test_processed_row_is_a_conflict(self, status):
        with pytest.raises(ApprovalAlreadyProcessedError) as exc:
            require(MANAGER, ResourceKind.APPROVAL, Action.REJECT, approval(status=status))
        assert exc.value.status_code == 409

    def test_other_company_row_looks_missing(self):
        target = approval(approver_id=OUTSIDER.id, company_id=COMPANY)
        with pytest.raises(ApprovalNotFoundError):
            require(OUTSIDER, ResourceKind.APPROVAL, Action.APPROVE, target)


# ---------------------------------------------------------------------------
# Company administration
# ---------------------------------------------------------------------------

class TestCompanyPermissions:
    def test_any_member_can_view_their_company(self):
        require(COWORKER, ResourceKind.COMPANY, Action.VIEW, CompanyTarget(COMPANY))

    def test_only_admin_can_manage(self):
        require(ADMIN, ResourceKind.COMPANY, Action.MANAGE, CompanyTarget(COMPANY))
        with pytest.raises(AuthorizationError):
            require(MANAGER, ResourceKind.COMPANY, Action.MANAGE, CompanyTarget(COMPANY))

    def test_other_company_is_not_found(self):
        with pytest.raises(CompanyNotFoundError):
            require(ADMIN, ResourceKind.COMPANY, Action.VIEW, CompanyTarget(OTHER_COMPANY))

    def test_unregistered_pair_is_denied(self):
        decision = authorize(ADMIN, ResourceKind.COMPANY, Action.APPROVE, CompanyTarget(COMPANY))
        assert not decision.allowed
        assert isinstance(decision.error, AuthorizationError)
