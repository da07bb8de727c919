"""
Error Handler
Classification of gateway errors into user-facing messages
"""

import logging
from typing import Dict, Any, Optional
from enum import Enum

from camel_gateway.app.services.onshape.errors import (
    AuthError,
    GatewayError,
    NotFoundError,
    SchemaError,
    TransportError,
)

logger = logging.getLogger(__name__)


class ErrorType(str, Enum):
    """Error type classification"""
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    SCHEMA = "schema"
    NETWORK = "network"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"


class ErrorInfo:
    """Structured error information"""
    def __init__(
        self,
        error_type: ErrorType,
        user_message: str,
        technical_message: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        self.error_type = error_type
        self.user_message = user_message
        self.technical_message = technical_message
        self.status_code = status_code
        self.retryable = retryable

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses"""
        return {
            "error_type": self.error_type.value,
            "user_message": self.user_message,
            "technical_message": self.technical_message,
            "status_code": self.status_code,
            "retryable": self.retryable,
        }


def parse_gateway_error(error: Exception) -> ErrorInfo:
    """
    Convert an exception raised while serving an action into ErrorInfo

    Args:
        error: Exception object, usually a GatewayError

    Returns:
        ErrorInfo with user-friendly message and error classification
    """
    technical_message = str(error)

    if isinstance(error, AuthError):
        return ErrorInfo(
            error_type=ErrorType.AUTHENTICATION,
            user_message="Your Onshape sign-in has expired. Please sign in again.",
            technical_message=technical_message,
            status_code=error.status_code,
        )

    if isinstance(error, NotFoundError):
        return ErrorInfo(
            error_type=ErrorType.NOT_FOUND,
            user_message="File not found",
            technical_message=technical_message,
            status_code=error.status_code,
        )

    if isinstance(error, SchemaError):
        return ErrorInfo(
            error_type=ErrorType.SCHEMA,
            user_message="Could not read the files stored in this Part Studio.",
            technical_message=technical_message,
            status_code=error.status_code,
        )

    if isinstance(error, TransportError):
        # Upstream 5xx and timeouts may succeed on a later attempt
        retryable = error.status is None or error.status >= 500
        return ErrorInfo(
            error_type=ErrorType.NETWORK,
            user_message="Could not reach Onshape. Please try again later."
            if retryable else "Onshape refused the request.",
            technical_message=technical_message,
            status_code=error.status_code,
            retryable=retryable,
        )

    if isinstance(error, GatewayError):
        return ErrorInfo(
            error_type=ErrorType.SERVER_ERROR,
            user_message=error.message,
            technical_message=technical_message,
            status_code=error.status_code,
        )

    logger.error(f"Unclassified error: {technical_message}")
    return ErrorInfo(
        error_type=ErrorType.UNKNOWN,
        user_message="An unexpected error occurred.",
        technical_message=technical_message,
        status_code=500,
    )
