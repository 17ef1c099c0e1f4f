"""
Approval rule resolution.

Given an expense, its submitter and the company's rules, pick the single most
specific matching rule and turn it into an ordered list of approvers. When no
rule matches, the submitter's manager is the only approver.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
import logging

from app.ReqResModels.usermodels import UserRole
from app.ReqResModels.approvalmodels import ApprovalSequence
from app.logic.exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

MAX_APPROVERS = 10

APPROVER_ROLES = {UserRole.MANAGER.value, UserRole.ADMIN.value}


@dataclass
class PlannedApprover:
    approver_id: int
    is_manager_approval: bool = False


@dataclass
class ApproverPlan:
    approvers: List[PlannedApprover] = field(default_factory=list)
    sequence: ApprovalSequence = ApprovalSequence.SEQUENTIAL
    min_approval_percentage: int = 100
    rule_id: Optional[int] = None

    @property
    def approver_ids(self) -> List[int]:
        return [a.approver_id for a in self.approvers]

    @property
    def required_approvals(self) -> int:
        if self.sequence == ApprovalSequence.SEQUENTIAL:
            return len(self.approvers)
        return required_approvals(len(self.approvers), self.min_approval_percentage)


def required_approvals(total: int, percentage: int) -> int:
    """ceil(total * percentage / 100) in integer arithmetic"""
    return (total * percentage + 99) // 100


def validate_rule_configuration(approver_ids: List[int], sequence: ApprovalSequence, percentage: int) -> None:
    errors = {}
    if not approver_ids:
        errors["approvers"] = "At least one approver is required"
    elif len(approver_ids) > MAX_APPROVERS:
        errors["approvers"] = f"At most {MAX_APPROVERS} approvers are allowed"
    elif len(set(approver_ids)) != len(approver_ids):
        errors["approvers"] = "Approvers must be unique"

    if not 1 <= percentage <= 100:
        errors["min_approval_percentage"] = "Must be between 1 and 100"
    elif sequence == ApprovalSequence.SEQUENTIAL and percentage != 100:
        errors["min_approval_percentage"] = "Sequential approval requires 100% approval percentage"
    elif len(approver_ids) == 1 and percentage != 100:
        errors["min_approval_percentage"] = "Single approver requires 100% approval percentage"
    elif approver_ids and required_approvals(len(approver_ids), percentage) < 1:
        errors["min_approval_percentage"] = "Approval configuration would require zero approvers"

    if errors:
        raise ValidationError("Invalid approval rule configuration", details=errors)


def rule_matches(conditions: Optional[dict], amount, category_id: int, role: str, department: Optional[str]) -> bool:
    """Every condition present on the rule must hold; an empty rule matches everything"""
    conditions = conditions or {}

    threshold = conditions.get("amount_threshold")
    if threshold is not None and Decimal(str(amount)) < Decimal(str(threshold)):
        return False

    category_ids = conditions.get("category_ids")
    if category_ids and category_id not in category_ids:
        return False

    user_roles = conditions.get("user_roles")
    if user_roles and role not in user_roles:
        return False

    departments = conditions.get("departments")
    if departments and department not in departments:
        return False

    return True


def specificity(conditions: Optional[dict]) -> int:
    conditions = conditions or {}
    if conditions.get("category_ids"):
        return 3
    if conditions.get("user_roles") or conditions.get("departments"):
        return 2
    if conditions.get("amount_threshold") is not None:
        return 1
    return 0


class ApprovalRuleResolver:

    @staticmethod
    def select_rule(expense, submitter, rules: Iterable):
        """Most specific active matching rule of the submitter's company; lowest id wins ties"""
        candidates = [
            rule for rule in rules
            if rule.is_active
            and rule.company_id == submitter.company_id
            and rule_matches(rule.conditions, expense.amount, expense.category_id,
                             submitter.role, submitter.department)
        ]
        if not candidates:
            return None
        candidates.sort(key=lambda rule: (-specificity(rule.conditions), rule.id))
        return candidates[0]

    @staticmethod
    def _usable_approver(user, submitter) -> bool:
        return (
            user is not None
            and user.company_id == submitter.company_id
            and user.role in APPROVER_ROLES
            and user.id != submitter.id
        )

    @staticmethod
    def resolve(expense, submitter, rules: Iterable, users: Dict[int, object]) -> ApproverPlan:
        """
        Build the approver plan for an expense.

        `users` maps user id to user for every id the rules and the submitter's
        manager reference; ids missing from it are treated as deleted.
        """
        manager = users.get(submitter.manager_id) if submitter.manager_id else None
        if not ApprovalRuleResolver._usable_approver(manager, submitter):
            manager = None

        rule = ApprovalRuleResolver.select_rule(expense, submitter, rules)

        if rule is None:
            if manager is None:
                raise ConfigurationError(
                    "No approval rule matches this expense and the submitter has no manager to approve it",
                    details={"expense_id": expense.id, "submitter_id": submitter.id},
                )
            logger.info(f"No rule matched expense {expense.id}; routing to manager {manager.id}")
            return ApproverPlan(
                approvers=[PlannedApprover(manager.id, is_manager_approval=True)],
                sequence=ApprovalSequence.SEQUENTIAL,
                min_approval_percentage=100,
                rule_id=None,
            )

        approvers: List[PlannedApprover] = []
        if rule.is_manager_approval_required:
            if manager is None:
                raise ConfigurationError(
                    f"Approval rule '{rule.name}' requires manager approval but the submitter has no manager",
                    details={"rule_id": rule.id, "submitter_id": submitter.id},
                )
            approvers.append(PlannedApprover(manager.id, is_manager_approval=True))

        seen = {a.approver_id for a in approvers}
        for step in sorted(rule.steps, key=lambda s: s.sequence_order):
            if step.approver_id in seen:
                continue
            user = users.get(step.approver_id)
            if not ApprovalRuleResolver._usable_approver(user, submitter):
                logger.warning(
                    f"Dropping approver {step.approver_id} of rule {rule.id}: no longer eligible"
                )
                continue
            approvers.append(PlannedApprover(step.approver_id))
            seen.add(step.approver_id)

        if not approvers:
            raise ConfigurationError(
                f"Approval rule '{rule.name}' has no eligible approvers",
                details={"rule_id": rule.id},
            )

        sequence = ApprovalSequence(rule.sequence)
        percentage = rule.min_approval_percentage
        if sequence == ApprovalSequence.SEQUENTIAL or len(approvers) == 1:
            percentage = 100

        return ApproverPlan(
            approvers=approvers,
            sequence=sequence,
            min_approval_percentage=percentage,
            rule_id=rule.id,
        )
