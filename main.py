from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from app import config
from app.api import api_router
from app.database.database import test_connection
from app.database.migration import run_migration
from app.logic.exceptions import BaseCustomError
from app.ReqResModels.common import ApiResponse, ErrorBody

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Expense Approval API",
    description="Multi-tenant expense submission and approval workflow",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_HTTP_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHENTICATED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "NOT_FOUND",
    409: "CONFLICT",
    422: "BUSINESS_RULE_VIOLATION",
}


def error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    body = ApiResponse(success=False, error=ErrorBody(code=code, message=message, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


@app.exception_handler(BaseCustomError)
async def custom_error_handler(request: Request, exc: BaseCustomError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return error_response(exc.status_code, exc.error_code or "INTERNAL_ERROR", "Internal server error")
    return error_response(exc.status_code, exc.error_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "header"))
        details[field or "request"] = error.get("msg", "Invalid value")
    return error_response(400, "VALIDATION_ERROR", "Request validation failed", details)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = _HTTP_CODES.get(exc.status_code, "INTERNAL_ERROR")
    return error_response(exc.status_code, code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(500, "INTERNAL_ERROR", "Internal server error")


@app.on_event("startup")
async def startup_event():
    """Run startup tasks"""
    logger.info("Starting up Expense Approval API...")
    if not test_connection():
        logger.error("Database connection failed!")
        return
    run_migration()
    logger.info("Startup completed!")

app.include_router(api_router)

@app.get("/")
def read_root():
    return {
        "message": "Welcome to the Expense Approval API",
        "version": "1.0.0",
        "status": "running"
    }

@app.get("/health")
def health_check():
    """Health check endpoint for deployment platforms"""
    db_status = test_connection()
    if not db_status:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return {
        "status": "healthy",
        "database": "connected",
        "version": "1.0.0"
    }
