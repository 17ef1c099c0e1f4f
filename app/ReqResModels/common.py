from pydantic import BaseModel, Field, model_serializer
from typing import Generic, Optional, TypeVar, Any

T = TypeVar("T")

class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None

class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every endpoint"""
    success: bool = True
    data: Optional[T] = None
    error: Optional[ErrorBody] = None

    @model_serializer(mode="wrap")
    def serialize_envelope(self, handler):
        body = handler(self)
        if body.get("error") is None:
            body.pop("error", None)
        return body

class PageParams(BaseModel):
    page: int = Field(default=1, ge=1, description="Page number")
    limit: int = Field(default=20, ge=1, le=100, description="Items per page")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

def total_pages(total: int, limit: int) -> int:
    return (total + limit - 1) // limit

def ok(data=None) -> ApiResponse:
    return ApiResponse(success=True, data=data)
