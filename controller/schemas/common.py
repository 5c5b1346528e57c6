"""Common schemas used across multiple endpoints."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Body of every error response: a message plus a stable machine-readable code."""
    detail: str
    code: str


ERROR_RESPONSES = {
    403: {"model": ErrorResponse, "description": "Caller does not own the file"},
    404: {"model": ErrorResponse, "description": "File not found"},
    500: {"model": ErrorResponse, "description": "Integrity fault"},
    503: {"model": ErrorResponse, "description": "Object store unavailable"},
}
