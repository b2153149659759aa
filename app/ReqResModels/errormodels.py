from pydantic import BaseModel
from typing import Optional

class ErrorDetail(BaseModel):
    error: str
    category: str  # invalid_request, not_found, forbidden, state_conflict, configuration, internal
    message: str

class ErrorResponse(BaseModel):
    detail: ErrorDetail

COMMON_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Bad request"},
    404: {"model": ErrorResponse, "description": "Resource not found"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
}

def error_responses(*codes: int, descriptions: Optional[dict] = None) -> dict:
    """OpenAPI `responses` entries for the given status codes"""
    descriptions = descriptions or {}
    defaults = {
        403: "Caller is not allowed to act on this resource",
        409: "Action conflicts with the current workflow state",
        422: "Approval configuration must be fixed by an admin",
    }
    responses = dict(COMMON_RESPONSES)
    for code in codes:
        responses[code] = {
            "model": ErrorResponse,
            "description": descriptions.get(code, defaults.get(code, "Error")),
        }
    return responses
