"""
Unified Error Handler for aitu-connect
Provides consistent error types for REST and live connection failures
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class ErrorType(Enum):
    """Standard error types"""
    # REST errors
    SERVER_UNREACHABLE = "server_unreachable"
    REQUEST_TIMEOUT = "request_timeout"
    REQUEST_FAILED = "request_failed"
    INVALID_RESPONSE = "invalid_response"

    # Session/auth errors
    UNAUTHORIZED = "unauthorized"

    # Live connection errors
    INVALID_FRAME = "invalid_frame"

    # Generic
    INTERNAL_ERROR = "internal_error"


class ConnectError(Exception):
    """Base exception for aitu-connect"""

    def __init__(
        self,
        message: str,
        error_type: ErrorType,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_type.value,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
        }


class ApiError(ConnectError):
    """REST request failures"""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.REQUEST_FAILED,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_type=error_type,
            status_code=status_code,
            details=details
        )


class AuthError(ApiError):
    """Authentication/authorization errors"""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.UNAUTHORIZED,
        status_code: Optional[int] = 401,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_type=error_type,
            status_code=status_code,
            details=details
        )


class FrameError(ConnectError):
    """Inbound frame that fails validation"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_type=ErrorType.INVALID_FRAME,
            details=details
        )


class ErrorHandler:
    """Centralized error conversion"""

    @staticmethod
    def handle_http_error(error: Exception, endpoint: str = "") -> ApiError:
        """Convert httpx and decoding errors to standardized format"""
        if isinstance(error, ApiError):
            return error

        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            detail = _response_detail(error.response)
            if status in (401, 403):
                return AuthError(
                    message=f"Not authorized for {endpoint}: {detail}",
                    status_code=status,
                    details={"endpoint": endpoint}
                )
            return ApiError(
                message=f"{endpoint} returned {status}: {detail}",
                status_code=status,
                details={"endpoint": endpoint}
            )

        if isinstance(error, httpx.TimeoutException):
            return ApiError(
                message=f"Request to {endpoint} timed out",
                error_type=ErrorType.REQUEST_TIMEOUT,
                details={"endpoint": endpoint, "original_error": str(error)}
            )

        if isinstance(error, httpx.TransportError):
            return ApiError(
                message=f"Could not reach server for {endpoint}",
                error_type=ErrorType.SERVER_UNREACHABLE,
                details={"endpoint": endpoint, "original_error": str(error)}
            )

        if isinstance(error, ValueError):
            # json decoding and pydantic validation both land here
            return ApiError(
                message=f"Invalid response from {endpoint}",
                error_type=ErrorType.INVALID_RESPONSE,
                details={"endpoint": endpoint, "original_error": str(error)}
            )

        logger.error(f"Unexpected error calling {endpoint}: {error}")
        return ApiError(
            message=f"Unexpected error calling {endpoint}",
            error_type=ErrorType.INTERNAL_ERROR,
            details={"endpoint": endpoint, "original_error": str(error)}
        )


def _response_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)
