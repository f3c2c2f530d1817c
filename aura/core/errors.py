"""
Custom exception hierarchy for the Aura rule service.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

The rule engine itself never raises these for bad sensor data; it fails
closed. They surface at the API / rule-creation boundary only.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

from aura.schemas.common import FieldError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class AuraPlatformError(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class AuraNotFoundError(AuraPlatformError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "AURA_NOT_FOUND"

    def __init__(self, aura_id: int):
        super().__init__(
            message=f"Aura {aura_id} does not exist.",
            details={"aura_id": aura_id},
        )


class RuleNotFoundError(AuraPlatformError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "RULE_NOT_FOUND"

    def __init__(self, rule_id: int):
        super().__init__(
            message=f"Behavior rule {rule_id} does not exist.",
            details={"rule_id": rule_id},
        )


class InvalidRuleError(AuraPlatformError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_RULE"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, details=details)


class UnknownSensorError(AuraPlatformError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "UNKNOWN_SENSOR"

    def __init__(self, sensor: str):
        super().__init__(
            message=f"Sensor '{sensor}' is not in the sensor catalog.",
            details={"sensor": sensor},
        )


class SensorNotFoundError(AuraPlatformError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "SENSOR_NOT_FOUND"

    def __init__(self, sensor: str):
        super().__init__(
            message=f"Sensor '{sensor}' is not in the sensor catalog.",
            details={"sensor": sensor},
        )


class UnsupportedOperatorError(AuraPlatformError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "UNSUPPORTED_OPERATOR"

    def __init__(self, sensor: str, operator: str, allowed: list[str]):
        super().__init__(
            message=f"Operator '{operator}' is not supported by sensor '{sensor}'.",
            details={"sensor": sensor, "operator": operator, "allowed": allowed},
        )


class CronUnauthorizedError(AuraPlatformError):
    http_status = status.HTTP_401_UNAUTHORIZED
    code = "CRON_UNAUTHORIZED"

    def __init__(self):
        super().__init__(message="Missing or invalid X-Cron-Secret header.")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def aura_exception_handler(request: Request, exc: AuraPlatformError) -> JSONResponse:
    logger.info("%s %s -> %s %s", request.method, request.url.path, exc.http_status, exc.code)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append(FieldError(
            field=".".join(str(loc) for loc in error["loc"] if loc != "body"),
            message=error["msg"],
            type=error["type"],
        ).model_dump())
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
