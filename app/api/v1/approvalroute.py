from fastapi import APIRouter, Depends, status as http_status
from sqlalchemy.orm import Session

from app.api.deps import get_caller
from app.database.database import get_db
from app.database.services.approval_service import ApprovalRuleService
from app.logic.access_control import Caller
from app.ReqResModels.common import ApiResponse, ErrorBody, ok
from app.ReqResModels.approvalmodels import (
    CreateApprovalRuleRequest,
    UpdateApprovalRuleRequest,
    ApprovalRuleQueryParams,
    ApprovalRuleResponse,
    ApprovalRuleListResponse,
)

router = APIRouter(
    prefix="/approval-rules",
    tags=["approval-rules"],
    responses={
        400: {"model": ErrorBody, "description": "Invalid rule configuration"},
        403: {"model": ErrorBody, "description": "Admins only"},
        404: {"model": ErrorBody, "description": "Approval rule not found"},
    }
)

@router.post(
    "",
    response_model=ApiResponse[ApprovalRuleResponse],
    status_code=http_status.HTTP_201_CREATED,
    summary="Create approval rule",
    description="Approvers are listed in sequence order; sequential rules require 100% approval"
)
def create_approval_rule(
    request: CreateApprovalRuleRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(ApprovalRuleService.create_approval_rule(db, caller, request))

@router.get(
    "",
    response_model=ApiResponse[ApprovalRuleListResponse],
    summary="List approval rules"
)
def get_approval_rules(
    params: ApprovalRuleQueryParams = Depends(),
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(ApprovalRuleService.get_approval_rules(db, caller, params))

@router.get(
    "/{rule_id}",
    response_model=ApiResponse[ApprovalRuleResponse],
    summary="Get approval rule by ID"
)
def get_approval_rule(
    rule_id: int,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(ApprovalRuleService.get_approval_rule(db, caller, rule_id))

@router.put(
    "/{rule_id}",
    response_model=ApiResponse[ApprovalRuleResponse],
    summary="Update approval rule"
)
def update_approval_rule(
    rule_id: int,
    request: UpdateApprovalRuleRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(ApprovalRuleService.update_approval_rule(db, caller, rule_id, request))

@router.delete(
    "/{rule_id}",
    response_model=ApiResponse[dict],
    summary="Delete approval rule"
)
def delete_approval_rule(
    rule_id: int,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    ApprovalRuleService.delete_approval_rule(db, caller, rule_id)
    return ok({"id": rule_id, "deleted": True})
