from typing import Optional

class BaseCustomError(Exception):
    """Base exception class for custom errors"""
    status_code = 500

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        self.message = message
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

# 400
class ValidationError(BaseCustomError):
    """Raised when validation fails; details maps each violated field to its message"""
    status_code = 400

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, "VALIDATION_ERROR", details)

# 401
class AuthenticationError(BaseCustomError):
    """Raised when the caller identity is missing or unknown"""
    status_code = 401

    def __init__(self, message: str):
        super().__init__(message, "UNAUTHENTICATED")

# 403
class AuthorizationError(BaseCustomError):
    """Raised when authorization fails"""
    status_code = 403

    def __init__(self, message: str):
        super().__init__(message, "FORBIDDEN")

# 404
class NotFoundError(BaseCustomError):
    """Raised when a resource is missing or belongs to another company"""
    status_code = 404

    def __init__(self, message: str):
        super().__init__(message, "NOT_FOUND")

class CompanyNotFoundError(NotFoundError):
    pass

class UserNotFoundError(NotFoundError):
    pass

class ExpenseNotFoundError(NotFoundError):
    pass

class ReceiptNotFoundError(NotFoundError):
    pass

class ApprovalNotFoundError(NotFoundError):
    pass

class ApprovalRuleNotFoundError(NotFoundError):
    pass

class NotificationNotFoundError(NotFoundError):
    pass

# 409
class ConflictError(BaseCustomError):
    """Raised when the request conflicts with the current state of a resource"""
    status_code = 409

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, "CONFLICT", details)

class CompanyAlreadyExistsError(ConflictError):
    pass

class UserAlreadyExistsError(ConflictError):
    pass

class CategoryAlreadyExistsError(ConflictError):
    pass

class ReceiptAlreadyExistsError(ConflictError):
    pass

class ApprovalAlreadyProcessedError(ConflictError):
    pass

class ConcurrentModificationError(ConflictError):
    pass

# 422
class BusinessRuleViolation(BaseCustomError):
    """Raised when a request is well-formed but breaks a business rule"""
    status_code = 422

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, "BUSINESS_RULE_VIOLATION", details)

class ReceiptRequiredError(BusinessRuleViolation):
    pass

class InvalidStateTransition(BusinessRuleViolation):
    pass

class ConfigurationError(BusinessRuleViolation):
    """Raised when approval configuration cannot produce any approver"""
    pass

# 500
class DatabaseError(BaseCustomError):
    """Raised when database operations fail"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, "INTERNAL_ERROR")
