from typing import Optional
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError
from datetime import datetime
import logging

from app import config
from app.database.models.expense import Expense, ExpenseApproval, ExpenseReceipt
from app.database.models.approval import ApprovalRule
from app.database.models.users import Company, ExpenseCategory, User
from app.ReqResModels.common import total_pages
from app.ReqResModels.usermodels import UserRole
from app.ReqResModels.expensemodels import (
    ExpenseScope,
    CreateExpenseRequest,
    UpdateExpenseRequest,
    OcrResultRequest,
    ExpenseQueryParams,
    ExpenseResponse,
    ExpenseDetailResponse,
    ExpenseListResponse,
    ReceiptResponse,
)
from app.ReqResModels.approvalmodels import ExpenseApprovalResponse
from app.logic.access_control import Caller, ExpenseTarget, ResourceKind, Action, require
from app.logic.approval_workflow import active_rows
from app.logic.expense_validation import validate_expense_fields
from app.logic.notifications import DomainEvent, EventType, NotificationEmitter, safe_emit
from app.logic.receipt_policy import is_receipt_required, enforce_receipt_requirement
from app.logic.rule_resolver import ApprovalRuleResolver
from app.logic.state_machine import WorkflowAction, next_status
from app.logic.storage import LocalReceiptStorage, receipt_storage
from app.logic.exceptions import (
    BaseCustomError,
    AuthorizationError,
    CompanyNotFoundError,
    ExpenseNotFoundError,
    ReceiptNotFoundError,
    ReceiptAlreadyExistsError,
    ConcurrentModificationError,
    ValidationError,
    DatabaseError,
)

logger = logging.getLogger(__name__)


class ExpenseService:

    # Loading helpers

    @staticmethod
    def get_expense_for_update(db: Session, caller: Caller, expense_id: int) -> Expense:
        """Row-locked load; expenses of other companies are reported as missing"""
        expense = db.query(Expense).filter(
            Expense.id == expense_id
        ).with_for_update().populate_existing().first()
        if not expense or expense.company_id != caller.company_id:
            raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")
        return expense

    @staticmethod
    def _get_expense(db: Session, caller: Caller, expense_id: int) -> Expense:
        expense = db.query(Expense).options(
            joinedload(Expense.receipt),
            joinedload(Expense.approvals),
            joinedload(Expense.submitter)
        ).filter(Expense.id == expense_id).first()
        if not expense or expense.company_id != caller.company_id:
            raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")
        return expense

    @staticmethod
    def _get_company(db: Session, company_id: int) -> Company:
        company = db.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise CompanyNotFoundError(f"Company with ID {company_id} not found")
        return company

    @staticmethod
    def _validate(db: Session, company: Company, fields: dict) -> None:
        """Collect every violated field before failing"""
        errors = validate_expense_fields(fields, company.max_expense_amount)
        if "category_id" in fields:
            category = db.query(ExpenseCategory).filter(
                ExpenseCategory.id == fields["category_id"],
                ExpenseCategory.company_id == company.id
            ).first()
            if not category:
                errors["category_id"] = "Category not found in this company"
        if errors:
            raise ValidationError("Invalid expense data", details=errors)

    @staticmethod
    def _normalize(fields: dict) -> dict:
        if fields.get("currency"):
            fields["currency"] = fields["currency"].upper()
        for key in ("description", "merchant_name"):
            if isinstance(fields.get(key), str):
                fields[key] = fields[key].strip()
        return fields

    # Entity operations

    @staticmethod
    def create_expense(db: Session, caller: Caller, request: CreateExpenseRequest) -> ExpenseResponse:
        """Create a draft expense for the caller"""
        try:
            company = ExpenseService._get_company(db, caller.company_id)
            fields = ExpenseService._normalize(request.model_dump())
            ExpenseService._validate(db, company, fields)

            db_expense = Expense(
                submitter_id=caller.id,
                company_id=caller.company_id,
                status="DRAFT",
                submission_cycle=0,
                created_at=datetime.utcnow(),
                **fields
            )

            db.add(db_expense)
            db.commit()
            db.refresh(db_expense)

            logger.info(f"Created draft expense {db_expense.id} for user {caller.id}")
            return ExpenseService._model_to_response(db_expense, company)

        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to create expense for user {caller.id}: {e}")
            raise DatabaseError(f"Failed to create expense: {str(e)}")

    @staticmethod
    def get_expense(db: Session, caller: Caller, expense_id: int) -> ExpenseDetailResponse:
        expense = ExpenseService._get_expense(db, caller, expense_id)
        require(caller, ResourceKind.EXPENSE, Action.VIEW, ExpenseTarget.from_expense(expense))
        company = ExpenseService._get_company(db, caller.company_id)
        return ExpenseService._model_to_detail(expense, company)

    @staticmethod
    def get_expenses(db: Session, caller: Caller, params: ExpenseQueryParams) -> ExpenseListResponse:
        """The caller's own expenses, their team's (managers) or the whole company's (admins)"""
        query = db.query(Expense).options(joinedload(Expense.receipt)).filter(
            Expense.company_id == caller.company_id
        )

        if params.scope == ExpenseScope.MINE:
            query = query.filter(Expense.submitter_id == caller.id)
        elif params.scope == ExpenseScope.TEAM:
            if caller.role not in (UserRole.MANAGER, UserRole.ADMIN):
                raise AuthorizationError("Only managers can list team expenses")
            team_ids = [
                row.id for row in db.query(User.id).filter(
                    User.manager_id == caller.id, User.company_id == caller.company_id
                ).all()
            ]
            query = query.filter(Expense.submitter_id.in_(team_ids + [caller.id]))
        elif not caller.is_admin:
            raise AuthorizationError("Only admins can list company expenses")

        if params.status:
            query = query.filter(Expense.status == params.status.value)
        if params.category_id:
            query = query.filter(Expense.category_id == params.category_id)
        if params.date_from:
            query = query.filter(Expense.expense_date >= params.date_from)
        if params.date_to:
            query = query.filter(Expense.expense_date <= params.date_to)

        total = query.count()
        offset = (params.page - 1) * params.limit
        expenses = query.order_by(Expense.created_at.desc(), Expense.id.desc()).offset(offset).limit(params.limit).all()

        company = ExpenseService._get_company(db, caller.company_id)
        return ExpenseListResponse(
            expenses=[ExpenseService._model_to_response(e, company) for e in expenses],
            total=total,
            page=params.page,
            limit=params.limit,
            total_pages=total_pages(total, params.limit)
        )

    @staticmethod
    def update_expense(db: Session, caller: Caller, expense_id: int, request: UpdateExpenseRequest) -> ExpenseResponse:
        """Edit a draft or rejected expense; the status is left untouched"""
        try:
            expense = ExpenseService.get_expense_for_update(db, caller, expense_id)
            require(caller, ResourceKind.EXPENSE, Action.UPDATE, ExpenseTarget.from_expense(expense))

            company = ExpenseService._get_company(db, caller.company_id)
            fields = ExpenseService._normalize(request.model_dump(exclude_unset=True))
            ExpenseService._validate(db, company, fields)

            for field, value in fields.items():
                setattr(expense, field, value)
            expense.updated_at = datetime.utcnow()

            db.commit()
            db.refresh(expense)

            logger.info(f"Updated expense {expense_id}: {sorted(fields)}")
            return ExpenseService._model_to_response(expense, company)

        except StaleDataError:
            db.rollback()
            raise ConcurrentModificationError(f"Expense {expense_id} was modified concurrently, retry the request")
        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to update expense {expense_id}: {e}")
            raise DatabaseError(f"Failed to update expense: {str(e)}")

    @staticmethod
    def delete_expense(db: Session, caller: Caller, expense_id: int,
                       storage: LocalReceiptStorage = receipt_storage) -> bool:
        """Delete a draft together with its receipt"""
        try:
            expense = ExpenseService.get_expense_for_update(db, caller, expense_id)
            require(caller, ResourceKind.EXPENSE, Action.DELETE, ExpenseTarget.from_expense(expense))

            file_url = expense.receipt.file_url if expense.receipt else None
            db.delete(expense)
            db.commit()

        except StaleDataError:
            db.rollback()
            raise ConcurrentModificationError(f"Expense {expense_id} was modified concurrently, retry the request")
        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to delete expense {expense_id}: {e}")
            raise DatabaseError(f"Failed to delete expense: {str(e)}")

        logger.info(f"Deleted expense {expense_id}")
        if file_url:
            storage.delete(file_url)
        return True

    # Workflow

    @staticmethod
    def submit_expense(db: Session, caller: Caller, expense_id: int,
                       emitter: Optional[NotificationEmitter] = None) -> ExpenseDetailResponse:
        """
        Send a draft or rejected expense into approval.

        The receipt policy is checked first, then the approval rules are
        resolved into a fresh set of PENDING approval rows tagged with the next
        submission cycle. Earlier cycles stay untouched for the audit trail.
        """
        try:
            expense = ExpenseService.get_expense_for_update(db, caller, expense_id)
            require(caller, ResourceKind.EXPENSE, Action.SUBMIT, ExpenseTarget.from_expense(expense))
            target_status = next_status(expense.status, WorkflowAction.SUBMIT)

            company = ExpenseService._get_company(db, caller.company_id)
            enforce_receipt_requirement(expense.amount, 1 if expense.receipt else 0, company)

            submitter = expense.submitter
            rules = db.query(ApprovalRule).options(joinedload(ApprovalRule.steps)).filter(
                ApprovalRule.company_id == company.id,
                ApprovalRule.is_active == True
            ).order_by(ApprovalRule.id.asc()).all()

            referenced = {s.approver_id for r in rules for s in r.steps}
            if submitter.manager_id:
                referenced.add(submitter.manager_id)
            users = {u.id: u for u in db.query(User).filter(User.id.in_(referenced)).all()} if referenced else {}

            plan = ApprovalRuleResolver.resolve(expense, submitter, rules, users)

            expense.submission_cycle = (expense.submission_cycle or 0) + 1
            now = datetime.utcnow()
            for order, planned in enumerate(plan.approvers, start=1):
                expense.approvals.append(ExpenseApproval(
                    approver_id=planned.approver_id,
                    submission_cycle=expense.submission_cycle,
                    sequence_order=order,
                    status="PENDING",
                    is_manager_approval=planned.is_manager_approval,
                    created_at=now
                ))

            expense.status = target_status.value
            expense.approval_rule_id = plan.rule_id
            expense.approval_sequence = plan.sequence.value
            expense.required_approval_percentage = plan.min_approval_percentage
            expense.submitted_at = now
            expense.updated_at = now

            db.commit()
            db.refresh(expense)

        except StaleDataError:
            db.rollback()
            raise ConcurrentModificationError(f"Expense {expense_id} was modified concurrently, retry the request")
        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to submit expense {expense_id}: {e}")
            raise DatabaseError(f"Failed to submit expense: {str(e)}")

        logger.info(
            f"Expense {expense_id} submitted (cycle {expense.submission_cycle}, rule {plan.rule_id}, "
            f"{plan.sequence.value}, approvers {plan.approver_ids})"
        )

        rows = expense.current_approvals()
        safe_emit(emitter, DomainEvent(
            event_type=EventType.EXPENSE_SUBMITTED,
            expense_id=expense.id,
            company_id=expense.company_id,
            actor_id=caller.id,
            recipient_ids=[expense.submitter_id],
            payload={"submission_cycle": expense.submission_cycle, "approver_ids": plan.approver_ids}
        ))
        safe_emit(emitter, DomainEvent(
            event_type=EventType.APPROVAL_REQUESTED,
            expense_id=expense.id,
            company_id=expense.company_id,
            actor_id=caller.id,
            recipient_ids=[r.approver_id for r in active_rows(rows, expense.approval_sequence)],
            payload={"submission_cycle": expense.submission_cycle}
        ))

        return ExpenseService._model_to_detail(expense, company)

    # Receipts

    @staticmethod
    def attach_receipt(db: Session, caller: Caller, expense_id: int, file_name: str,
                       content_type: str, content: bytes,
                       storage: LocalReceiptStorage = receipt_storage) -> ReceiptResponse:
        """Store a single receipt file for a draft or rejected expense"""
        errors = {}
        if content_type not in config.RECEIPT_ALLOWED_TYPES:
            errors["receipt"] = "Receipt must be a JPEG, PNG or PDF file"
        elif not content:
            errors["receipt"] = "Receipt file is empty"
        elif len(content) > config.RECEIPT_MAX_BYTES:
            errors["receipt"] = f"Receipt must not exceed {config.RECEIPT_MAX_BYTES // (1024 * 1024)}MB"
        if errors:
            raise ValidationError("Invalid receipt file", details=errors)

        file_url = None
        try:
            expense = ExpenseService.get_expense_for_update(db, caller, expense_id)
            require(caller, ResourceKind.EXPENSE, Action.MANAGE_RECEIPT, ExpenseTarget.from_expense(expense))
            if expense.receipt is not None:
                raise ReceiptAlreadyExistsError(
                    f"Expense {expense_id} already has a receipt",
                    details={"receipt_id": expense.receipt.id}
                )

            file_url = storage.save(expense_id, content, content_type)
            receipt = ExpenseReceipt(
                expense_id=expense.id,
                file_url=file_url,
                file_name=file_name or "receipt",
                file_type=content_type,
                file_size=len(content),
                uploaded_at=datetime.utcnow()
            )
            db.add(receipt)
            expense.updated_at = datetime.utcnow()
            db.commit()
            db.refresh(receipt)

            logger.info(f"Attached receipt {receipt.id} to expense {expense_id}")
            return ReceiptResponse.model_validate(receipt)

        except Exception as e:
            db.rollback()
            if file_url:
                storage.delete(file_url)
            if isinstance(e, StaleDataError):
                raise ConcurrentModificationError(f"Expense {expense_id} was modified concurrently, retry the request")
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to attach receipt to expense {expense_id}: {e}")
            raise DatabaseError(f"Failed to attach receipt: {str(e)}")

    @staticmethod
    def remove_receipt(db: Session, caller: Caller, expense_id: int,
                       storage: LocalReceiptStorage = receipt_storage) -> bool:
        try:
            expense = ExpenseService.get_expense_for_update(db, caller, expense_id)
            require(caller, ResourceKind.EXPENSE, Action.MANAGE_RECEIPT, ExpenseTarget.from_expense(expense))
            receipt = expense.receipt
            if receipt is None:
                raise ReceiptNotFoundError(f"Expense {expense_id} has no receipt")

            file_url = receipt.file_url
            expense.receipt = None
            expense.updated_at = datetime.utcnow()
            db.commit()

        except StaleDataError:
            db.rollback()
            raise ConcurrentModificationError(f"Expense {expense_id} was modified concurrently, retry the request")
        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to remove receipt of expense {expense_id}: {e}")
            raise DatabaseError(f"Failed to remove receipt: {str(e)}")

        logger.info(f"Removed receipt of expense {expense_id}")
        storage.delete(file_url)
        return True

    @staticmethod
    def record_ocr(db: Session, caller: Caller, receipt_id: int, request: OcrResultRequest) -> ReceiptResponse:
        """Attach fields extracted by the OCR service to a receipt"""
        try:
            receipt = db.query(ExpenseReceipt).filter(ExpenseReceipt.id == receipt_id).first()
            if not receipt or receipt.expense.company_id != caller.company_id:
                raise ReceiptNotFoundError(f"Receipt with ID {receipt_id} not found")
            require(caller, ResourceKind.EXPENSE, Action.MANAGE_RECEIPT, ExpenseTarget.from_expense(receipt.expense))

            receipt.ocr_merchant = request.merchant_name
            receipt.ocr_amount = request.total_amount
            receipt.ocr_date = request.receipt_date
            receipt.ocr_confidence = request.confidence

            db.commit()
            db.refresh(receipt)
            return ReceiptResponse.model_validate(receipt)

        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to record OCR result for receipt {receipt_id}: {e}")
            raise DatabaseError(f"Failed to record OCR result: {str(e)}")

    # Response helpers

    @staticmethod
    def _model_to_response(expense: Expense, company: Company, response_type=ExpenseResponse):
        """Convert SQLAlchemy model to Pydantic response model"""
        response = response_type.model_validate(expense)
        return response.model_copy(update={"receipt_required": is_receipt_required(expense.amount, company)})

    @staticmethod
    def _model_to_detail(expense: Expense, company: Company) -> ExpenseDetailResponse:
        response = ExpenseService._model_to_response(expense, company, ExpenseDetailResponse)
        return response.model_copy(update={
            "approvals": [ExpenseApprovalResponse.model_validate(a) for a in expense.current_approvals()]
        })
