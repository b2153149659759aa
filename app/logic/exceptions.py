from typing import Optional

class BaseCustomError(Exception):
    """Base exception class for custom errors"""
    category = "internal"

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)

    def to_detail(self) -> dict:
        return {
            "error": self.error_code,
            "category": self.category,
            "message": self.message,
        }

class DatabaseError(BaseCustomError):
    """Raised when database operations fail"""
    def __init__(self, message: str):
        super().__init__(message, "DATABASE_ERROR")

class ValidationError(BaseCustomError):
    """Raised when validation fails, including malformed rule definitions"""
    category = "invalid_request"

    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")

class AuthorizationError(BaseCustomError):
    """Raised when the caller may not act on a resource"""
    category = "forbidden"

    def __init__(self, message: str):
        super().__init__(message, "AUTHORIZATION_ERROR")

# Not found

class NotFoundError(BaseCustomError):
    category = "not_found"

class CompanyNotFoundError(NotFoundError):
    def __init__(self, message: str):
        super().__init__(message, "COMPANY_NOT_FOUND")

class UserNotFoundError(NotFoundError):
    def __init__(self, message: str):
        super().__init__(message, "USER_NOT_FOUND")

class ExpenseNotFoundError(NotFoundError):
    def __init__(self, message: str):
        super().__init__(message, "EXPENSE_NOT_FOUND")

class ApprovalNotFoundError(NotFoundError):
    def __init__(self, message: str):
        super().__init__(message, "APPROVAL_NOT_FOUND")

class ApprovalRuleNotFoundError(NotFoundError):
    def __init__(self, message: str):
        super().__init__(message, "RULE_NOT_FOUND")

class NotificationNotFoundError(NotFoundError):
    def __init__(self, message: str):
        super().__init__(message, "NOTIFICATION_NOT_FOUND")

# Duplicates

class CompanyAlreadyExistsError(BaseCustomError):
    """Raised when trying to create a company that already exists"""
    category = "invalid_request"

    def __init__(self, message: str):
        super().__init__(message, "COMPANY_ALREADY_EXISTS")

class UserAlreadyExistsError(BaseCustomError):
    """Raised when trying to create a user whose email is taken"""
    category = "invalid_request"

    def __init__(self, message: str):
        super().__init__(message, "USER_ALREADY_EXISTS")

# Workflow state conflicts: retryable after the client refreshes its view

class StateConflictError(BaseCustomError):
    category = "state_conflict"

class InvalidStateTransitionError(StateConflictError):
    """Raised on submit of a non-DRAFT expense or a decision on a non-actionable record"""
    def __init__(self, message: str):
        super().__init__(message, "INVALID_STATE_TRANSITION")

class OutOfSequenceError(StateConflictError):
    """Raised when a sequential approver acts before their predecessor decided"""
    def __init__(self, message: str):
        super().__init__(message, "OUT_OF_SEQUENCE")

class AlreadyProcessedError(StateConflictError):
    """Raised on a second decision for an approval that is already decided"""
    def __init__(self, message: str):
        super().__init__(message, "ALREADY_PROCESSED")

class RuleInUseError(StateConflictError):
    """Raised when deleting a rule that an in-flight approval chain was built from"""
    def __init__(self, message: str):
        super().__init__(message, "RULE_IN_USE")

# Configuration problems: an admin has to fix data before retrying

class ConfigurationError(BaseCustomError):
    category = "configuration"

class InvalidApproverError(ConfigurationError):
    """Raised when a rule names an approver who can no longer approve"""
    def __init__(self, message: str, approver_id: Optional[int] = None, rule_id: Optional[int] = None):
        super().__init__(message, "INVALID_APPROVER")
        self.approver_id = approver_id
        self.rule_id = rule_id

class RuleEvaluationError(ConfigurationError):
    """Raised when a persisted rule condition cannot be evaluated"""
    def __init__(self, message: str, rule_id: Optional[int] = None):
        super().__init__(message, "RULE_EVALUATION_ERROR")
        self.rule_id = rule_id
