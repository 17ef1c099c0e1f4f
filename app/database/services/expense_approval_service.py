from typing import List, Optional
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError
from datetime import datetime
import logging

from app import config
from app.database.models.expense import Expense, ExpenseApproval
from app.ReqResModels.common import total_pages
from app.ReqResModels.expensemodels import ExpenseStatus
from app.ReqResModels.approvalmodels import (
    ApprovalDecision,
    ApprovalSequence,
    ExpenseApprovalStatus,
    ExpenseApprovalResponse,
    ExpenseApprovalStatusResponse,
    DecisionResponse,
    ApprovalTaskQueryParams,
    ApprovalTaskResponse,
    ApprovalTaskListResponse,
)
from app.logic.access_control import (
    APPROVER_ROLES,
    Caller,
    ApprovalTarget,
    ExpenseTarget,
    ResourceKind,
    Action,
    require,
)
from app.logic.approval_workflow import aggregate_status, is_active, active_rows
from app.logic.notifications import DomainEvent, EventType, NotificationEmitter, safe_emit
from app.logic.state_machine import WorkflowAction, next_status
from app.logic.exceptions import (
    BaseCustomError,
    AuthorizationError,
    ApprovalNotFoundError,
    ExpenseNotFoundError,
    ApprovalAlreadyProcessedError,
    BusinessRuleViolation,
    ConflictError,
    ConcurrentModificationError,
    ValidationError,
    DatabaseError,
)

logger = logging.getLogger(__name__)


class ExpenseApprovalService:

    @staticmethod
    def _check_decision_input(decision: ApprovalDecision, comment: Optional[str], reason: Optional[str]) -> None:
        errors = {}
        if decision == ApprovalDecision.REJECT:
            if not reason or not reason.strip():
                errors["reason"] = "A rejection reason is required"
            if not comment or not comment.strip():
                errors["comment"] = "A rejection comment is required"
        elif comment is not None and not comment.strip():
            errors["comment"] = "Comment must not be empty if provided"
        if errors:
            raise ValidationError("Invalid decision", details=errors)

    @staticmethod
    def decide(db: Session, caller: Caller, approval_id: int, decision: ApprovalDecision,
               comment: Optional[str] = None, reason: Optional[str] = None,
               emitter: Optional[NotificationEmitter] = None) -> DecisionResponse:
        """
        Record an approver's decision and recompute the expense status.

        The approval row and the expense are written in one transaction while
        the expense row is locked. The expense version is bumped on every
        decision, so two deciders racing on the same expense serialize; the
        loser is retried a bounded number of times before a conflict is
        reported.
        """
        ExpenseApprovalService._check_decision_input(decision, comment, reason)

        attempts = max(1, config.DECISION_MAX_ATTEMPTS)
        for attempt in range(1, attempts + 1):
            try:
                events = ExpenseApprovalService._apply_decision(db, caller, approval_id, decision, comment, reason)
                db.commit()
                break
            except StaleDataError:
                db.rollback()
                logger.warning(f"Version conflict deciding approval {approval_id} (attempt {attempt}/{attempts})")
                if attempt == attempts:
                    raise ConcurrentModificationError(
                        f"Approval {approval_id} could not be recorded because the expense kept changing, retry the request"
                    )
            except Exception as e:
                db.rollback()
                if isinstance(e, BaseCustomError):
                    raise e
                logger.error(f"Failed to record decision on approval {approval_id}: {e}")
                raise DatabaseError(f"Failed to record decision: {str(e)}")

        approval = db.query(ExpenseApproval).filter(ExpenseApproval.id == approval_id).first()
        expense = approval.expense
        logger.info(
            f"Approval {approval_id} {approval.status} by user {caller.id}; "
            f"expense {expense.id} is {expense.status}"
        )
        for event in events:
            safe_emit(emitter, event)

        return DecisionResponse(
            approval=ExpenseApprovalResponse.model_validate(approval),
            expense_id=expense.id,
            expense_status=expense.status
        )

    @staticmethod
    def _apply_decision(db: Session, caller: Caller, approval_id: int, decision: ApprovalDecision,
                        comment: Optional[str], reason: Optional[str]) -> List[DomainEvent]:
        expense_id = db.query(ExpenseApproval.expense_id).filter(ExpenseApproval.id == approval_id).scalar()
        if expense_id is None:
            raise ApprovalNotFoundError(f"Approval with ID {approval_id} not found")

        # Lock the expense first so the approval rows read below cannot change underneath
        expense = db.query(Expense).filter(
            Expense.id == expense_id
        ).with_for_update().populate_existing().first()
        if not expense or expense.company_id != caller.company_id:
            raise ApprovalNotFoundError(f"Approval with ID {approval_id} not found")

        rows = db.query(ExpenseApproval).filter(
            ExpenseApproval.expense_id == expense.id,
            ExpenseApproval.submission_cycle == expense.submission_cycle
        ).order_by(ExpenseApproval.sequence_order.asc()).populate_existing().all()
        approval = next((r for r in rows if r.id == approval_id), None)
        if approval is None:
            approval = db.query(ExpenseApproval).filter(
                ExpenseApproval.id == approval_id
            ).populate_existing().first()
        action = Action.APPROVE if decision == ApprovalDecision.APPROVE else Action.REJECT
        require(caller, ResourceKind.APPROVAL, action, ApprovalTarget.from_approval(approval))

        if approval.submission_cycle != expense.submission_cycle or expense.status == ExpenseStatus.APPROVED.value:
            raise ConflictError(
                f"Approval {approval_id} no longer affects expense {expense.id}",
                details={"expense_status": expense.status}
            )

        sequence = ApprovalSequence(expense.approval_sequence or ApprovalSequence.SEQUENTIAL.value)
        active_before = {r.id for r in active_rows(rows, sequence)}
        now = datetime.utcnow()

        if decision == ApprovalDecision.APPROVE:
            if expense.status != ExpenseStatus.PENDING_APPROVAL.value:
                raise ConflictError(
                    f"Expense {expense.id} is {expense.status} and can no longer be approved",
                    details={"expense_status": expense.status}
                )
            if not is_active(approval, rows, sequence):
                raise BusinessRuleViolation(
                    "Earlier approvers in the sequence must approve first",
                    details={"sequence_order": approval.sequence_order}
                )
            approval.status = ExpenseApprovalStatus.APPROVED.value
            approval.comments = comment
        else:
            approval.status = ExpenseApprovalStatus.REJECTED.value
            approval.comments = f"{reason.strip()}: {comment.strip()}"
        approval.processed_at = now

        progress = aggregate_status(rows, sequence, expense.required_approval_percentage or 100)
        previous_status = expense.status
        if expense.status == ExpenseStatus.PENDING_APPROVAL.value:
            if progress.outcome == ExpenseStatus.APPROVED:
                expense.status = next_status(expense.status, WorkflowAction.APPROVE).value
            elif progress.outcome == ExpenseStatus.REJECTED:
                expense.status = next_status(expense.status, WorkflowAction.REJECT).value
        # Always touched so the version column moves with every decision
        expense.updated_at = now
        db.flush()

        events = []
        base = {"expense_id": expense.id, "company_id": expense.company_id, "actor_id": caller.id}
        if expense.status != previous_status and expense.status == ExpenseStatus.APPROVED.value:
            events.append(DomainEvent(
                event_type=EventType.EXPENSE_APPROVED,
                recipient_ids=[expense.submitter_id],
                payload={"approval_id": approval.id, "comment": comment},
                **base
            ))
        elif expense.status != previous_status and expense.status == ExpenseStatus.REJECTED.value:
            events.append(DomainEvent(
                event_type=EventType.EXPENSE_REJECTED,
                recipient_ids=[expense.submitter_id],
                payload={"approval_id": approval.id, "reason": reason, "comment": comment},
                **base
            ))
        elif expense.status == ExpenseStatus.PENDING_APPROVAL.value:
            newly_active = [r.approver_id for r in active_rows(rows, sequence) if r.id not in active_before]
            if newly_active:
                events.append(DomainEvent(
                    event_type=EventType.APPROVAL_REQUESTED,
                    recipient_ids=newly_active,
                    payload={"submission_cycle": expense.submission_cycle},
                    **base
                ))
        return events

    @staticmethod
    def decide_for_expense(db: Session, caller: Caller, expense_id: int, decision: ApprovalDecision,
                           comment: Optional[str] = None, reason: Optional[str] = None,
                           emitter: Optional[NotificationEmitter] = None) -> DecisionResponse:
        """Decide the caller's pending approval in the expense's current submission cycle"""
        ExpenseApprovalService._check_decision_input(decision, comment, reason)

        expense = db.query(Expense).options(joinedload(Expense.approvals)).filter(Expense.id == expense_id).first()
        if not expense or expense.company_id != caller.company_id:
            raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")

        mine = [a for a in expense.current_approvals() if a.approver_id == caller.id]
        if not mine:
            raise AuthorizationError("You are not an approver of this expense")
        pending = [a for a in mine if a.status == ExpenseApprovalStatus.PENDING.value]
        if not pending:
            raise ApprovalAlreadyProcessedError(
                f"Your approval for expense {expense_id} has already been processed",
                details={"approval_status": mine[0].status}
            )

        return ExpenseApprovalService.decide(
            db, caller, pending[0].id, decision, comment=comment, reason=reason, emitter=emitter
        )

    @staticmethod
    def get_approval_status(db: Session, caller: Caller, expense_id: int) -> ExpenseApprovalStatusResponse:
        """Read-only progress of the current submission cycle"""
        expense = db.query(Expense).options(
            joinedload(Expense.approvals),
            joinedload(Expense.submitter)
        ).filter(Expense.id == expense_id).first()
        if not expense or expense.company_id != caller.company_id:
            raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")
        require(caller, ResourceKind.EXPENSE, Action.VIEW, ExpenseTarget.from_expense(expense))

        rows = expense.current_approvals()
        required_percentage = expense.required_approval_percentage or 100
        sequence = ApprovalSequence(expense.approval_sequence) if expense.approval_sequence else None

        if rows:
            progress = aggregate_status(rows, sequence, required_percentage)
            approved_count, total, required = progress.approved_count, progress.total, progress.required
            percentage = progress.approval_percentage
        else:
            approved_count, total, required, percentage = 0, 0, 0, 0.0

        next_ids = []
        if expense.status == ExpenseStatus.PENDING_APPROVAL.value and rows:
            next_ids = [r.approver_id for r in active_rows(rows, sequence)]

        pending = [r for r in rows if r.status == ExpenseApprovalStatus.PENDING.value]
        completed = [r for r in rows if r.status != ExpenseApprovalStatus.PENDING.value]

        return ExpenseApprovalStatusResponse(
            expense_id=expense.id,
            current_status=expense.status,
            submission_cycle=expense.submission_cycle,
            sequence=sequence,
            is_fully_approved=expense.status == ExpenseStatus.APPROVED.value,
            approved_count=approved_count,
            total_approvers=total,
            required_approvals=required,
            approval_percentage=percentage,
            required_percentage=required_percentage,
            next_approver_ids=next_ids,
            pending_approvals=[ExpenseApprovalResponse.model_validate(r) for r in pending],
            completed_approvals=[ExpenseApprovalResponse.model_validate(r) for r in completed]
        )

    @staticmethod
    def _is_actionable(approval: ExpenseApproval) -> bool:
        expense = approval.expense
        if expense.status != ExpenseStatus.PENDING_APPROVAL.value:
            return False
        if approval.submission_cycle != expense.submission_cycle:
            return False
        sequence = expense.approval_sequence or ApprovalSequence.SEQUENTIAL.value
        return is_active(approval, expense.current_approvals(), sequence)

    @staticmethod
    def get_tasks(db: Session, caller: Caller, params: ApprovalTaskQueryParams) -> ApprovalTaskListResponse:
        """
        Approval rows assigned to the caller. The PENDING view lists only rows
        the caller can decide right now; rows left over from a finished or
        superseded cycle are omitted.
        """
        if caller.role not in APPROVER_ROLES:
            raise AuthorizationError("Only managers and admins have approval tasks")

        query = db.query(ExpenseApproval).join(Expense).options(
            joinedload(ExpenseApproval.expense).joinedload(Expense.submitter),
            joinedload(ExpenseApproval.expense).joinedload(Expense.approvals)
        ).filter(
            ExpenseApproval.approver_id == caller.id,
            Expense.company_id == caller.company_id,
            ExpenseApproval.status == params.status.value
        ).order_by(ExpenseApproval.created_at.asc(), ExpenseApproval.id.asc())

        offset = (params.page - 1) * params.limit
        if params.status == ExpenseApprovalStatus.PENDING:
            rows = [a for a in query.all() if ExpenseApprovalService._is_actionable(a)]
            total = len(rows)
            rows = rows[offset:offset + params.limit]
        else:
            total = query.count()
            rows = query.offset(offset).limit(params.limit).all()

        return ApprovalTaskListResponse(
            tasks=[ExpenseApprovalService._task_response(a) for a in rows],
            total=total,
            page=params.page,
            limit=params.limit,
            total_pages=total_pages(total, params.limit)
        )

    @staticmethod
    def _task_response(approval: ExpenseApproval) -> ApprovalTaskResponse:
        expense = approval.expense
        return ApprovalTaskResponse(
            approval_id=approval.id,
            expense_id=expense.id,
            status=approval.status,
            sequence_order=approval.sequence_order,
            is_manager_approval=bool(approval.is_manager_approval),
            can_decide_now=ExpenseApprovalService._is_actionable(approval),
            submitter_id=expense.submitter_id,
            submitter_name=expense.submitter.name if expense.submitter else "",
            amount=expense.amount,
            currency=expense.currency,
            category_id=expense.category_id,
            description=expense.description,
            expense_date=expense.expense_date,
            expense_status=expense.status,
            submitted_at=expense.submitted_at
        )
