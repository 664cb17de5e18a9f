"""
SMAP API Response Utilities
Standardized response format and error handling
"""
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from .exceptions import (
    SmapError,
    ValidationError,
    PlatformNotConnectedError,
    NotFoundError,
    InvalidTransitionError,
    PlatformError,
    TokenExpiredError,
    ConfigurationError,
)
from .logging_config import api_logger


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================
# SUCCESS RESPONSES
# ============================================================

def success(data: Any = None, message: str = None, meta: Dict = None) -> Dict:
    """Create success response"""
    response = {
        "ok": True,
        "timestamp": _timestamp(),
    }

    if data is not None:
        response["data"] = data

    if message:
        response["message"] = message

    if meta:
        response["meta"] = meta

    return response


def created(data: Any, message: str = "Created successfully") -> Dict:
    return success(data, message)


def updated(data: Any = None, message: str = "Updated successfully") -> Dict:
    return success(data, message)


def paginated(items: List, total: int, page: int = 1, per_page: int = 50) -> Dict:
    """Paginated list response"""
    return {
        "ok": True,
        "data": items,
        "pagination": {
            "total": total,
            "page": page,
            "per_page": per_page,
            "total_pages": (total + per_page - 1) // per_page,
            "has_next": page * per_page < total,
            "has_prev": page > 1,
        },
        "timestamp": _timestamp(),
    }


# ============================================================
# ERROR RESPONSES
# ============================================================

class ApiException(HTTPException):
    """Custom API exception with error codes"""

    def __init__(
        self,
        status_code: int,
        message: str,
        error_code: str = None,
        details: Dict = None,
    ):
        self.error_code = error_code or f"ERR_{status_code}"
        self.details = details
        super().__init__(status_code=status_code, detail=message)


def unauthorized(message: str = "Authentication required"):
    raise ApiException(401, message, "UNAUTHORIZED")

def validation_error(message: str, details: Dict = None):
    raise ApiException(400, message, "VALIDATION_ERROR", details)


def to_api_exception(exc: SmapError) -> ApiException:
    """Map a domain exception onto an HTTP status and error code"""
    if isinstance(exc, PlatformNotConnectedError):
        return ApiException(400, str(exc), "PLATFORM_NOT_CONNECTED", {"platform": exc.platform})
    if isinstance(exc, ValidationError):
        details = {"field": exc.field} if exc.field else None
        return ApiException(400, str(exc), "VALIDATION_ERROR", details)
    if isinstance(exc, NotFoundError):
        return ApiException(404, str(exc), "NOT_FOUND")
    if isinstance(exc, InvalidTransitionError):
        return ApiException(400, str(exc), "INVALID_STATE", {"status": exc.current})
    if isinstance(exc, TokenExpiredError):
        return ApiException(401, str(exc), "TOKEN_EXPIRED", {"platform": exc.platform})
    if isinstance(exc, PlatformError):
        return ApiException(502, str(exc), "PLATFORM_ERROR", {"platform": exc.platform})
    if isinstance(exc, ConfigurationError):
        return ApiException(503, str(exc), "SERVICE_UNAVAILABLE")
    return ApiException(500, str(exc), "INTERNAL_ERROR")


# ============================================================
# EXCEPTION HANDLER
# ============================================================

async def api_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for API and domain errors"""

    if isinstance(exc, SmapError):
        exc = to_api_exception(exc)

    if isinstance(exc, ApiException):
        api_logger.warning(
            f"API Error: {exc.detail}",
            status_code=exc.status_code,
            error_code=exc.error_code,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "ok": False,
                "error": exc.detail,
                "error_code": exc.error_code,
                "details": exc.details,
                "timestamp": _timestamp(),
            }
        )

    api_logger.error(
        f"Unexpected error: {exc}",
        error=exc,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": "An unexpected error occurred",
            "error_code": "INTERNAL_ERROR",
            "timestamp": _timestamp(),
        }
    )


# ============================================================
# VALIDATION HELPERS
# ============================================================

def require(value: Any, field_name: str, label: Optional[str] = None):
    """Require a field to be present"""
    if value is None or (isinstance(value, str) and not value.strip()):
        validation_error(f"{label or field_name} is required", {"field": field_name})
    return value
