"""
Error envelope models, used only to document responses in OpenAPI.

Every 4xx/5xx body is `{code, message, details?}`; see aura.core.errors
for the handlers that produce it.
"""
from typing import Any, Optional

from pydantic import BaseModel


class FieldError(BaseModel):
    field: str
    message: str
    type: str


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


NOT_FOUND = {404: {"model": ErrorEnvelope, "description": "Aura or rule not found."}}
INVALID_RULE = {
    422: {
        "model": ErrorEnvelope,
        "description": "Invalid trigger, unknown sensor, unsupported operator or malformed body.",
    },
}
UNAUTHORIZED = {401: {"model": ErrorEnvelope, "description": "Missing or invalid X-Cron-Secret."}}
