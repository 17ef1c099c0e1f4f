from typing import Optional
from fastapi import APIRouter, Depends, Query, status as http_status
from sqlalchemy.orm import Session

from app.api.deps import get_caller, get_current_user
from app.database.database import get_db
from app.database.services.user_service import UserService
from app.logic.access_control import Caller
from app.ReqResModels.common import ApiResponse, ErrorBody, PageParams, ok
from app.ReqResModels.usermodels import (
    UserRole,
    CreateUserRequest,
    UpdateUserRequest,
    UserResponse,
    UserListResponse,
)

router = APIRouter(
    prefix="/users",
    tags=["users"],
    responses={
        403: {"model": ErrorBody, "description": "Admins only"},
        404: {"model": ErrorBody, "description": "User not found"},
        409: {"model": ErrorBody, "description": "User already exists"},
    }
)

@router.post(
    "",
    response_model=ApiResponse[UserResponse],
    status_code=http_status.HTTP_201_CREATED,
    summary="Create a user in the caller's company"
)
def create_user(
    request: CreateUserRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(UserService.create_user(db, caller, request))

@router.get(
    "",
    response_model=ApiResponse[UserListResponse],
    summary="List users of the caller's company"
)
def get_users(
    params: PageParams = Depends(),
    role: Optional[UserRole] = Query(None, description="Filter by role"),
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(UserService.get_users(db, caller, params, role))

@router.get(
    "/me",
    response_model=ApiResponse[UserResponse],
    summary="Current user"
)
def get_me(user=Depends(get_current_user)):
    return ok(UserResponse.model_validate(user))

@router.get(
    "/{user_id}",
    response_model=ApiResponse[UserResponse],
    summary="Get user by ID"
)
def get_user(
    user_id: int,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(UserService.get_user(db, caller, user_id))

@router.put(
    "/{user_id}",
    response_model=ApiResponse[UserResponse],
    summary="Update a user"
)
def update_user(
    user_id: int,
    request: UpdateUserRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(UserService.update_user(db, caller, user_id, request))
