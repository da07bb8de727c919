"""
Onshape gateway errors

Every failure that leaves the file resolver is one of AuthError,
TransportError, SchemaError or NotFoundError.
"""

from typing import Optional


class GatewayError(Exception):
    """Base error for remote evaluation failures"""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthError(GatewayError):
    """User is unauthenticated or the refresh token exchange failed"""

    status_code = 401


class TransportError(GatewayError):
    """Non-2xx response from the platform, or the request never completed"""

    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body


class UnauthorizedResponse(TransportError):
    """401 from the evaluation endpoint; consumed by the refresh interceptor"""

    def __init__(self, body: Optional[str] = None):
        super().__init__("Onshape rejected the access token", status=401, body=body)


class SchemaError(GatewayError):
    """Evaluation result does not have the shape the operation expects"""

    status_code = 502


class NotFoundError(GatewayError):
    """Requested file is absent under every storage schema"""

    status_code = 404
