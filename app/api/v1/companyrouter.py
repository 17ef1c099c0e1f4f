from fastapi import APIRouter, Depends, status as http_status
from sqlalchemy.orm import Session

from app.api.deps import get_caller
from app.database.database import get_db
from app.database.services.company_service import CompanyService
from app.logic.access_control import Caller
from app.ReqResModels.common import ApiResponse, ErrorBody, ok
from app.ReqResModels.companymodels import (
    CreateCompanyRequest,
    CreateCompanyResponse,
    CompanyResponse,
    CompanySettings,
    UpdateCompanySettingsRequest,
    CreateCategoryRequest,
    CategoryResponse,
    CategoryListResponse,
)

router = APIRouter(
    prefix="/companies",
    tags=["companies"],
    responses={
        404: {"model": ErrorBody, "description": "Company not found"},
        409: {"model": ErrorBody, "description": "Company already exists"},
    }
)

@router.post(
    "",
    response_model=ApiResponse[CreateCompanyResponse],
    status_code=http_status.HTTP_201_CREATED,
    summary="Onboard a company",
    description="Creates the company, its first admin and a default set of expense categories"
)
def create_company(
    request: CreateCompanyRequest,
    db: Session = Depends(get_db)
):
    return ok(CompanyService.create_company(db, request))

@router.get(
    "/{company_id}",
    response_model=ApiResponse[CompanyResponse],
    summary="Get company by ID"
)
def get_company(
    company_id: int,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(CompanyService.get_company(db, caller, company_id))

@router.get(
    "/{company_id}/settings",
    response_model=ApiResponse[CompanySettings],
    summary="Get expense policy settings"
)
def get_company_settings(
    company_id: int,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(CompanyService.get_settings(db, caller, company_id))

@router.put(
    "/{company_id}/settings",
    response_model=ApiResponse[CompanySettings],
    summary="Update expense policy settings"
)
def update_company_settings(
    company_id: int,
    request: UpdateCompanySettingsRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(CompanyService.update_settings(db, caller, company_id, request))

@router.post(
    "/{company_id}/categories",
    response_model=ApiResponse[CategoryResponse],
    status_code=http_status.HTTP_201_CREATED,
    summary="Create expense category"
)
def create_category(
    company_id: int,
    request: CreateCategoryRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(CompanyService.create_category(db, caller, company_id, request))

@router.get(
    "/{company_id}/categories",
    response_model=ApiResponse[CategoryListResponse],
    summary="List expense categories"
)
def get_categories(
    company_id: int,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db)
):
    return ok(CompanyService.list_categories(db, caller, company_id))
