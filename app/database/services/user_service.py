from typing import Optional
from sqlalchemy.orm import Session
from datetime import datetime
import logging
import bcrypt

from app.database.models.users import User
from app.ReqResModels.common import PageParams, total_pages
from app.ReqResModels.usermodels import (
    UserRole,
    CreateUserRequest,
    UpdateUserRequest,
    UserResponse,
    UserListResponse,
)
from app.logic.access_control import Caller, CompanyTarget, ResourceKind, Action, require
from app.logic.exceptions import (
    BaseCustomError,
    AuthenticationError,
    UserNotFoundError,
    UserAlreadyExistsError,
    ValidationError,
    DatabaseError,
)

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


class UserService:

    @staticmethod
    def resolve_caller(db: Session, user_id: Optional[int]) -> User:
        """Load the user an authenticated request acts as"""
        if user_id is None:
            raise AuthenticationError("Missing caller identity")
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise AuthenticationError("Unknown caller identity")
        return user

    @staticmethod
    def _check_manager(db: Session, company_id: int, manager_id: Optional[int], user_id: Optional[int] = None):
        if manager_id is None:
            return
        if user_id is not None and manager_id == user_id:
            raise ValidationError("A user cannot manage themselves", details={"manager_id": "must differ from the user"})
        manager = db.query(User).filter(User.id == manager_id, User.company_id == company_id).first()
        if not manager:
            raise ValidationError(
                f"Manager with ID {manager_id} not found in the same company",
                details={"manager_id": "unknown manager"}
            )
        if manager.role not in (UserRole.MANAGER.value, UserRole.ADMIN.value):
            raise ValidationError(
                f"User {manager_id} cannot be a manager",
                details={"manager_id": "must be a MANAGER or ADMIN"}
            )

    @staticmethod
    def create_user(db: Session, caller: Caller, request: CreateUserRequest) -> UserResponse:
        """Create a user in the caller's company (admins only)"""
        require(caller, ResourceKind.COMPANY, Action.MANAGE, CompanyTarget(caller.company_id))
        try:
            existing_user = db.query(User).filter(User.email == request.email).first()
            if existing_user:
                raise UserAlreadyExistsError(f"User with email '{request.email}' already exists")

            UserService._check_manager(db, caller.company_id, request.manager_id)

            db_user = User(
                company_id=caller.company_id,
                name=request.name,
                email=request.email,
                password_hash=hash_password(request.password),
                role=request.role.value,
                manager_id=request.manager_id,
                department=request.department,
                created_at=datetime.utcnow()
            )

            db.add(db_user)
            db.commit()
            db.refresh(db_user)

            logger.info(f"Created user {db_user.id} ({db_user.role}) in company {caller.company_id}")
            return UserResponse.model_validate(db_user)

        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to create user '{request.email}': {e}")
            raise DatabaseError(f"Failed to create user: {str(e)}")

    @staticmethod
    def get_user(db: Session, caller: Caller, user_id: int) -> UserResponse:
        """Users are visible within their own company only"""
        user = db.query(User).filter(User.id == user_id).first()
        if not user or user.company_id != caller.company_id:
            raise UserNotFoundError(f"User with ID {user_id} not found")
        return UserResponse.model_validate(user)

    @staticmethod
    def get_users(db: Session, caller: Caller, params: PageParams, role: Optional[UserRole] = None) -> UserListResponse:
        require(caller, ResourceKind.COMPANY, Action.MANAGE, CompanyTarget(caller.company_id))
        query = db.query(User).filter(User.company_id == caller.company_id)
        if role:
            query = query.filter(User.role == role.value)

        total = query.count()
        users = query.order_by(User.id.asc()).offset(params.offset).limit(params.limit).all()

        return UserListResponse(
            users=[UserResponse.model_validate(u) for u in users],
            total=total,
            page=params.page,
            limit=params.limit,
            total_pages=total_pages(total, params.limit)
        )

    @staticmethod
    def update_user(db: Session, caller: Caller, user_id: int, request: UpdateUserRequest) -> UserResponse:
        """Change a user's name, role, manager or department (admins only)"""
        require(caller, ResourceKind.COMPANY, Action.MANAGE, CompanyTarget(caller.company_id))
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user or user.company_id != caller.company_id:
                raise UserNotFoundError(f"User with ID {user_id} not found")

            update_data = request.model_dump(exclude_unset=True)
            if "manager_id" in update_data:
                UserService._check_manager(db, user.company_id, update_data["manager_id"], user.id)

            for field, value in update_data.items():
                if value is None and field in ("name", "role"):
                    raise ValidationError(f"{field} cannot be cleared", details={field: "must not be null"})
                if isinstance(value, UserRole):
                    value = value.value
                setattr(user, field, value)
            user.updated_at = datetime.utcnow()

            db.commit()
            db.refresh(user)
            return UserResponse.model_validate(user)

        except Exception as e:
            db.rollback()
            if isinstance(e, BaseCustomError):
                raise e
            logger.error(f"Failed to update user {user_id}: {e}")
            raise DatabaseError(f"Failed to update user: {str(e)}")
