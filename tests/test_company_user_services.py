"""
Tests for company onboarding, expense policy settings and user management.
"""
from decimal import Decimal

import bcrypt
import pytest

from app.database.models.users import ExpenseCategory, User
from app.database.services.company_service import DEFAULT_CATEGORIES, CompanyService
from app.database.services.user_service import UserService
from app.logic.exceptions import (
    AuthenticationError,
    AuthorizationError,
    CategoryAlreadyExistsError,
    CompanyAlreadyExistsError,
    CompanyNotFoundError,
    UserAlreadyExistsError,
    UserNotFoundError,
    ValidationError,
)
from app.ReqResModels.common import PageParams
from app.ReqResModels.companymodels import (
    AdminAccountRequest,
    CreateCategoryRequest,
    CreateCompanyRequest,
    UpdateCompanySettingsRequest,
)
from app.ReqResModels.usermodels import CreateUserRequest, UpdateUserRequest, UserRole
from factories import caller_for


def onboarding(name="Initech", email="bill@initech.io"):
    return CreateCompanyRequest(
        name=name,
        country="United States",
        currency_code="usd",
        admin=AdminAccountRequest(name="Bill Lumbergh", email=email, password="tps-reports-1"),
    )


# ---------------------------------------------------------------------------
# CompanyService.create_company
# ---------------------------------------------------------------------------

class TestCreateCompany:
    def test_creates_company_admin_and_categories(self, db):
        result = CompanyService.create_company(db, onboarding())

        assert result.company.currency_code == "USD"
        assert result.company.settings.require_receipts is True
        assert result.admin.role == UserRole.ADMIN
        assert result.admin.company_id == result.company.id

        admin = db.get(User, result.admin.id)
        assert bcrypt.checkpw(b"tps-reports-1", admin.password_hash.encode("utf-8"))
        names = {c.name for c in db.query(ExpenseCategory).filter(ExpenseCategory.company_id == result.company.id)}
        assert names == set(DEFAULT_CATEGORIES)

    def test_duplicate_company_name(self, db, company):
        with pytest.raises(CompanyAlreadyExistsError):
            CompanyService.create_company(db, onboarding(name=company.name))

    def test_duplicate_admin_email(self, db):
        CompanyService.create_company(db, onboarding())
        with pytest.raises(UserAlreadyExistsError):
            CompanyService.create_company(db, onboarding(name="Initrode"))


# ---------------------------------------------------------------------------
# Settings and categories
# ---------------------------------------------------------------------------

class TestCompanySettings:
    def test_members_can_read_settings(self, db, company, employee):
        settings = CompanyService.get_settings(db, caller_for(employee), company.id)
        assert settings.receipt_min_amount == Decimal("25")

    def test_admin_updates_policy(self, db, company, admin):
        settings = CompanyService.update_settings(
            db, caller_for(admin), company.id,
            UpdateCompanySettingsRequest(require_receipts=False, max_expense_amount=Decimal("500"))
        )
        assert settings.require_receipts is False
        assert settings.max_expense_amount == Decimal("500")

    def test_manager_cannot_update_policy(self, db, company, manager):
        with pytest.raises(AuthorizationError):
            CompanyService.update_settings(
                db, caller_for(manager), company.id, UpdateCompanySettingsRequest(require_receipts=False)
            )

    def test_settings_cannot_be_cleared(self, db, company, admin):
        with pytest.raises(ValidationError):
            CompanyService.update_settings(
                db, caller_for(admin), company.id, UpdateCompanySettingsRequest(receipt_min_amount=None)
            )

    def test_receipt_threshold_above_maximum(self, db, company, admin):
        with pytest.raises(ValidationError) as exc:
            CompanyService.update_settings(
                db, caller_for(admin), company.id, UpdateCompanySettingsRequest(receipt_min_amount=Decimal("50000"))
            )
        assert "receipt_min_amount" in exc.value.details
        db.refresh(company)
        assert company.receipt_min_amount == Decimal("25")

    def test_lowering_maximum_below_receipt_threshold(self, db, company, admin):
        with pytest.raises(ValidationError):
            CompanyService.update_settings(
                db, caller_for(admin), company.id, UpdateCompanySettingsRequest(max_expense_amount=Decimal("10"))
            )

    def test_other_company_is_not_found(self, db, company, outsider):
        with pytest.raises(CompanyNotFoundError):
            CompanyService.get_company(db, caller_for(outsider), company.id)

    def test_categories(self, db, company, admin, category):
        created = CompanyService.create_category(db, caller_for(admin), company.id, CreateCategoryRequest(name=" Meals "))
        assert created.name == "Meals"

        with pytest.raises(CategoryAlreadyExistsError):
            CompanyService.create_category(db, caller_for(admin), company.id, CreateCategoryRequest(name="Travel"))

        listing = CompanyService.list_categories(db, caller_for(admin), company.id)
        assert [c.name for c in listing.categories] == ["Meals", "Travel"]


# ---------------------------------------------------------------------------
# UserService
# ---------------------------------------------------------------------------

class TestUsers:
    def test_resolve_caller(self, db, employee):
        assert UserService.resolve_caller(db, employee.id).id == employee.id
        with pytest.raises(AuthenticationError):
            UserService.resolve_caller(db, None)
        with pytest.raises(AuthenticationError):
            UserService.resolve_caller(db, 4242)

    def test_admin_creates_user_in_own_company(self, db, admin, manager):
        user = UserService.create_user(db, caller_for(admin), CreateUserRequest(
            name="Nina New", email="nina@acme.io", password="long-enough", manager_id=manager.id,
            department="Sales",
        ))
        assert user.company_id == admin.company_id
        assert user.role == UserRole.EMPLOYEE
        assert user.manager_id == manager.id

    def test_manager_must_be_manager_or_admin(self, db, admin, coworker):
        with pytest.raises(ValidationError) as exc:
            UserService.create_user(db, caller_for(admin), CreateUserRequest(
                name="Nina New", email="nina@acme.io", password="long-enough", manager_id=coworker.id,
            ))
        assert "manager_id" in exc.value.details

    def test_manager_from_other_company(self, db, admin, outsider):
        with pytest.raises(ValidationError):
            UserService.create_user(db, caller_for(admin), CreateUserRequest(
                name="Nina New", email="nina@acme.io", password="long-enough", manager_id=outsider.id,
            ))

    def test_employees_cannot_create_users(self, db, employee):
        with pytest.raises(AuthorizationError):
            UserService.create_user(db, caller_for(employee), CreateUserRequest(
                name="Nina New", email="nina@acme.io", password="long-enough",
            ))

    def test_users_of_other_companies_are_invisible(self, db, employee, outsider):
        with pytest.raises(UserNotFoundError):
            UserService.get_user(db, caller_for(outsider), employee.id)

    def test_list_by_role(self, db, admin, manager, approver_b, employee):
        managers = UserService.get_users(db, caller_for(admin), PageParams(), role=UserRole.MANAGER)
        assert {u.id for u in managers.users} == {manager.id, approver_b.id}

    def test_promote_and_reassign(self, db, admin, employee, approver_b):
        updated = UserService.update_user(
            db, caller_for(admin), employee.id, UpdateUserRequest(role=UserRole.MANAGER, manager_id=approver_b.id)
        )
        assert updated.role == UserRole.MANAGER
        assert updated.manager_id == approver_b.id

    def test_user_cannot_manage_themselves(self, db, admin, manager):
        with pytest.raises(ValidationError):
            UserService.update_user(db, caller_for(admin), manager.id, UpdateUserRequest(manager_id=manager.id))
