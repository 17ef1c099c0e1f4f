from typing import List
from sqlalchemy.orm import Session, joinedload
from datetime import datetime
import logging

from app.database.models.approval import ApprovalRule, ApprovalStep
from app.database.models.users import User, ExpenseCategory
from app.ReqResModels.common import total_pages
from app.ReqResModels.usermodels import UserRole
from app.ReqResModels.approvalmodels import (
    ApprovalSequence,
    RuleConditions,
    CreateApprovalRuleRequest,
    UpdateApprovalRuleRequest,
    ApprovalRuleQueryParams,
    ApprovalRuleResponse,
    ApprovalRuleListResponse,
    ApproverResponse,
)
from app.logic.access_control import Caller, CompanyTarget, ResourceKind, Action, require
from app.logic.rule_resolver import validate_rule_configuration
from app.logic.exceptions import (
    BaseCustomError,
    ApprovalRuleNotFoundError,
    ValidationError,
    DatabaseError,
)

logger = logging.getLogger(__name__)


class ApprovalRuleService:

    @staticmethod
    def _check_approvers(db: Session, company_id: int, approver_ids: List[int]) -> None:
        """Approvers must be managers or admins of the rule's company"""
        users = db.query(User).filter(User.id.in_(approver_ids), User.company_id == company_id).all()
        found = {u.id: u for u in users}
        missing = [i for i in approver_ids if i not in found]
        if missing:
            raise ValidationError(
                f"Approvers with IDs {missing} not found in this company",
                details={"approvers": f"unknown users {missing}"}
            )
        ineligible = [u.id for u in users if u.role not in (UserRole.MANAGER.value, UserRole.ADMIN.value)]
        if ineligible:
            raise ValidationError(
                f"Users {sorted(ineligible)} cannot approve expenses",
                details={"approvers": "approvers must be MANAGER or ADMIN"}
            )

    @staticmethod
    def _check_conditions(db: Session, company_id: int, conditions: RuleConditions) -> None:
        if not conditions.category_ids:
            return
        known = {
            c.id for c in db.query(ExpenseCategory).filter(
                ExpenseCategory.id.in_(conditions.category_ids),
                ExpenseCategory.company_id == company_id
            ).all()
        }
        missing = [i for i in conditions.category_ids if i not in known]
        if missing:
            raise ValidationError(
                f"Categories {missing} not found in this company",
                details={"conditions.category_ids": f"unknown categories {missing}"}
            )

    @staticmethod
    def _replace_steps(db: Session, rule: ApprovalRule, approver_ids: List[int]) -> None:
        rule.steps.clear()
        if rule.id is not None:
            # deletes must reach the database before re-inserting the same approvers
            db.flush()
        for order, approver_id in enumerate(approver_ids, start=1):
            rule.steps.append(ApprovalStep(approver_id=approver_id, sequence_order=order))

    @staticmethod
    def create_approval_rule(db: Session, caller: Caller, request: CreateApprovalRuleRequest) -> ApprovalRuleResponse:
        """Create an approval rule in the caller's company"""
        require(caller, ResourceKind.COMPANY, Action.MANAGE, CompanyTarget(caller.company_id))
        try:
            validate_rule_configuration(request.approvers, request.sequence, request.min_approval_percentage)
            ApprovalRuleService._check_approvers(db, caller.company_id, request.approvers)
            ApprovalRuleService._check_conditions(db, caller.company_id, request.conditions)

            db_rule = ApprovalRule(
                company_id=caller.company_id,
                name=request.name,
                description=request.description,
                conditions=request.conditions.model_dump(mode="json", exclude_none=True),
                sequence=request.sequence.value,
                min_approval_percentage=request.min_approval_percentage,
                is_manager_approval_required=request.is_manager_approval_required,
                is_active=request.is_active,
                created_at=datetime.utcnow()
            )
            ApprovalRuleService._replace_steps(db, db_rule, request.approvers)
            db.add(db_rule)
            db.commit()
            db.refresh(db_rule)

            logger.info(f"Created approval rule {db_rule.id} in company {caller.company_id}")
            return ApprovalRuleService._model_to_response(db_rule)

        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to create approval rule: {e}")
            raise DatabaseError(f"Failed to create approval rule: {str(e)}")

    @staticmethod
    def _get_rule(db: Session, caller: Caller, rule_id: int) -> ApprovalRule:
        rule = db.query(ApprovalRule).options(
            joinedload(ApprovalRule.steps).joinedload(ApprovalStep.approver)
        ).filter(ApprovalRule.id == rule_id).first()
        if not rule or rule.company_id != caller.company_id:
            raise ApprovalRuleNotFoundError(f"Approval rule with ID {rule_id} not found")
        return rule

    @staticmethod
    def get_approval_rule(db: Session, caller: Caller, rule_id: int) -> ApprovalRuleResponse:
        require(caller, ResourceKind.COMPANY, Action.MANAGE, CompanyTarget(caller.company_id))
        return ApprovalRuleService._model_to_response(ApprovalRuleService._get_rule(db, caller, rule_id))

    @staticmethod
    def get_approval_rules(db: Session, caller: Caller, params: ApprovalRuleQueryParams) -> ApprovalRuleListResponse:
        """Get paginated list of the company's approval rules"""
        require(caller, ResourceKind.COMPANY, Action.MANAGE, CompanyTarget(caller.company_id))
        query = db.query(ApprovalRule).filter(ApprovalRule.company_id == caller.company_id)
        if params.is_active is not None:
            query = query.filter(ApprovalRule.is_active == params.is_active)

        total = query.count()
        rules = query.options(
            joinedload(ApprovalRule.steps).joinedload(ApprovalStep.approver)
        ).order_by(ApprovalRule.id.asc()).offset((params.page - 1) * params.limit).limit(params.limit).all()

        return ApprovalRuleListResponse(
            rules=[ApprovalRuleService._model_to_response(rule) for rule in rules],
            total=total,
            page=params.page,
            limit=params.limit,
            total_pages=total_pages(total, params.limit)
        )

    @staticmethod
    def update_approval_rule(db: Session, caller: Caller, rule_id: int,
                             request: UpdateApprovalRuleRequest) -> ApprovalRuleResponse:
        """Update a rule; expenses already submitted keep the plan they were given"""
        require(caller, ResourceKind.COMPANY, Action.MANAGE, CompanyTarget(caller.company_id))
        try:
            rule = ApprovalRuleService._get_rule(db, caller, rule_id)
            update_data = request.model_dump(exclude_unset=True, exclude={"approvers", "conditions"})

            for field in ("name", "sequence", "min_approval_percentage",
                          "is_manager_approval_required", "is_active"):
                if field in update_data and update_data[field] is None:
                    raise ValidationError(f"{field} cannot be cleared", details={field: "must not be null"})

            approver_ids = request.approvers if request.approvers is not None else [s.approver_id for s in rule.steps]
            sequence = request.sequence or ApprovalSequence(rule.sequence)
            percentage = request.min_approval_percentage or rule.min_approval_percentage
            validate_rule_configuration(approver_ids, sequence, percentage)

            if request.approvers is not None:
                ApprovalRuleService._check_approvers(db, rule.company_id, request.approvers)
                ApprovalRuleService._replace_steps(db, rule, request.approvers)

            if "conditions" in request.model_fields_set:
                conditions = request.conditions or RuleConditions()
                ApprovalRuleService._check_conditions(db, rule.company_id, conditions)
                rule.conditions = conditions.model_dump(mode="json", exclude_none=True)

            for field, value in update_data.items():
                if isinstance(value, ApprovalSequence):
                    value = value.value
                setattr(rule, field, value)
            rule.updated_at = datetime.utcnow()

            db.commit()
            db.refresh(rule)

            logger.info(f"Updated approval rule {rule_id}")
            return ApprovalRuleService._model_to_response(rule)

        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to update approval rule {rule_id}: {e}")
            raise DatabaseError(f"Failed to update approval rule: {str(e)}")

    @staticmethod
    def delete_approval_rule(db: Session, caller: Caller, rule_id: int) -> bool:
        """Delete an approval rule"""
        require(caller, ResourceKind.COMPANY, Action.MANAGE, CompanyTarget(caller.company_id))
        try:
            rule = ApprovalRuleService._get_rule(db, caller, rule_id)
            db.delete(rule)
            db.commit()
            logger.info(f"Deleted approval rule {rule_id}")
            return True

        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to delete approval rule {rule_id}: {e}")
            raise DatabaseError(f"Failed to delete approval rule: {str(e)}")

    @staticmethod
    def _model_to_response(rule: ApprovalRule) -> ApprovalRuleResponse:
        """Convert SQLAlchemy model to Pydantic response model"""
        approvers = [
            ApproverResponse(
                approver_id=step.approver_id,
                approver_name=step.approver.name if step.approver else "",
                approver_email=step.approver.email if step.approver else "",
                sequence_order=step.sequence_order
            )
            for step in sorted(rule.steps, key=lambda s: s.sequence_order)
        ]

        return ApprovalRuleResponse(
            id=rule.id,
            company_id=rule.company_id,
            name=rule.name,
            description=rule.description,
            conditions=RuleConditions(**(rule.conditions or {})),
            sequence=rule.sequence,
            min_approval_percentage=rule.min_approval_percentage,
            is_manager_approval_required=rule.is_manager_approval_required,
            is_active=rule.is_active,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
            approvers=approvers
        )
