from sqlalchemy.orm import Session
from datetime import datetime
import logging

from app.database.models.users import Company, ExpenseCategory, User
from app.database.services.user_service import hash_password
from app.ReqResModels.usermodels import UserRole, UserResponse
from app.ReqResModels.companymodels import (
    CreateCompanyRequest,
    CompanySettings,
    UpdateCompanySettingsRequest,
    CreateCategoryRequest,
    CompanyResponse,
    CreateCompanyResponse,
    CategoryResponse,
    CategoryListResponse,
)
from app.logic.access_control import Caller, CompanyTarget, ResourceKind, Action, require
from app.logic.exceptions import (
    BaseCustomError,
    CompanyNotFoundError,
    CompanyAlreadyExistsError,
    UserAlreadyExistsError,
    CategoryAlreadyExistsError,
    ValidationError,
    DatabaseError,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ("Travel", "Meals", "Office Supplies", "Accommodation", "Other")


class CompanyService:

    @staticmethod
    def create_company(db: Session, request: CreateCompanyRequest) -> CreateCompanyResponse:
        """Onboard a company together with its first admin and a default category set"""
        try:
            existing_company = db.query(Company).filter(Company.name == request.name).first()
            if existing_company:
                raise CompanyAlreadyExistsError(f"Company with name '{request.name}' already exists")

            if db.query(User).filter(User.email == request.admin.email).first():
                raise UserAlreadyExistsError(f"User with email '{request.admin.email}' already exists")

            db_company = Company(
                name=request.name,
                country=request.country,
                currency_code=request.currency_code.upper(),
                created_at=datetime.utcnow()
            )
            db.add(db_company)
            db.flush()

            admin = User(
                company_id=db_company.id,
                name=request.admin.name,
                email=request.admin.email,
                password_hash=hash_password(request.admin.password),
                role=UserRole.ADMIN.value,
                created_at=datetime.utcnow()
            )
            db.add(admin)

            for name in DEFAULT_CATEGORIES:
                db.add(ExpenseCategory(company_id=db_company.id, name=name))

            db.commit()
            db.refresh(db_company)
            db.refresh(admin)

            logger.info(f"Created company {db_company.id} with admin {admin.id}")
            return CreateCompanyResponse(
                company=CompanyService._model_to_response(db_company),
                admin=UserResponse.model_validate(admin)
            )

        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to create company '{request.name}': {e}")
            raise DatabaseError(f"Failed to create company: {str(e)}")

    @staticmethod
    def _get_company(db: Session, company_id: int) -> Company:
        company = db.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise CompanyNotFoundError(f"Company with ID {company_id} not found")
        return company

    @staticmethod
    def get_company(db: Session, caller: Caller, company_id: int) -> CompanyResponse:
        require(caller, ResourceKind.COMPANY, Action.VIEW, CompanyTarget(company_id))
        return CompanyService._model_to_response(CompanyService._get_company(db, company_id))

    @staticmethod
    def get_settings(db: Session, caller: Caller, company_id: int) -> CompanySettings:
        require(caller, ResourceKind.COMPANY, Action.VIEW, CompanyTarget(company_id))
        return CompanySettings.model_validate(CompanyService._get_company(db, company_id))

    @staticmethod
    def update_settings(db: Session, caller: Caller, company_id: int,
                        request: UpdateCompanySettingsRequest) -> CompanySettings:
        """Update the expense policy of a company (admins only)"""
        require(caller, ResourceKind.COMPANY, Action.MANAGE, CompanyTarget(company_id))
        try:
            company = CompanyService._get_company(db, company_id)

            update_data = request.model_dump(exclude_unset=True)
            for field, value in update_data.items():
                if value is None:
                    raise ValidationError("Settings cannot be cleared", details={field: "must not be null"})
                setattr(company, field, value)
            if company.receipt_min_amount > company.max_expense_amount:
                raise ValidationError(
                    "Receipt threshold cannot exceed the maximum expense amount",
                    details={"receipt_min_amount": f"must not exceed max_expense_amount ({company.max_expense_amount})"}
                )
            company.updated_at = datetime.utcnow()

            db.commit()
            db.refresh(company)

            logger.info(f"Updated settings of company {company_id}: {sorted(update_data)}")
            return CompanySettings.model_validate(company)

        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to update settings of company {company_id}: {e}")
            raise DatabaseError(f"Failed to update company settings: {str(e)}")

    @staticmethod
    def create_category(db: Session, caller: Caller, company_id: int,
                        request: CreateCategoryRequest) -> CategoryResponse:
        require(caller, ResourceKind.COMPANY, Action.MANAGE, CompanyTarget(company_id))
        try:
            CompanyService._get_company(db, company_id)
            name = request.name.strip()
            existing = db.query(ExpenseCategory).filter(
                ExpenseCategory.company_id == company_id,
                ExpenseCategory.name == name
            ).first()
            if existing:
                raise CategoryAlreadyExistsError(f"Category '{name}' already exists")

            category = ExpenseCategory(company_id=company_id, name=name)
            db.add(category)
            db.commit()
            db.refresh(category)
            return CategoryResponse.model_validate(category)

        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to create category for company {company_id}: {e}")
            raise DatabaseError(f"Failed to create category: {str(e)}")

    @staticmethod
    def list_categories(db: Session, caller: Caller, company_id: int) -> CategoryListResponse:
        require(caller, ResourceKind.COMPANY, Action.VIEW, CompanyTarget(company_id))
        categories = db.query(ExpenseCategory).filter(
            ExpenseCategory.company_id == company_id
        ).order_by(ExpenseCategory.name.asc()).all()
        return CategoryListResponse(
            categories=[CategoryResponse.model_validate(c) for c in categories],
            total=len(categories)
        )

    @staticmethod
    def _model_to_response(company: Company) -> CompanyResponse:
        """Convert SQLAlchemy model to Pydantic response model"""
        return CompanyResponse(
            id=company.id,
            name=company.name,
            country=company.country,
            currency_code=company.currency_code,
            settings=CompanySettings.model_validate(company),
            created_at=company.created_at,
            updated_at=company.updated_at
        )
