"""
Session authentication
The session cookie carries a signed session id; the Identity itself stays
in the server-side session store.
"""

import logging
from typing import Optional

from fastapi import Request, Response
from jose import jwt
from jose.exceptions import JWTError

from camel_gateway.app.core.gateway import Gateway
from camel_gateway.app.models.document import Identity

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class SignInRequired(Exception):
    """Raised by action dependencies when the session has no Identity"""

    def __init__(self, return_to: str):
        super().__init__("Sign-in required")
        self.return_to = return_to


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


def encode_session_cookie(session_id: str, secret: str) -> str:
    return jwt.encode({"sid": session_id, "type": "session"}, secret, algorithm=ALGORITHM)


def decode_session_cookie(token: str, secret: str) -> Optional[str]:
    """Session id from a cookie value, None if tampered or malformed"""
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != "session":
        return None
    return payload.get("sid")


def set_session_cookie(response: Response, gateway: Gateway, session_id: str) -> None:
    settings = gateway.settings
    response.set_cookie(
        settings.session_cookie_name,
        encode_session_cookie(session_id, settings.session_cookie_secret),
        max_age=settings.session_ttl_seconds,
        secure=True,
        httponly=True,
        samesite="none",
    )


def clear_session_cookie(response: Response, gateway: Gateway) -> None:
    response.delete_cookie(
        gateway.settings.session_cookie_name, secure=True, httponly=True, samesite="none"
    )


def get_session_id(request: Request) -> Optional[str]:
    gateway = get_gateway(request)
    token = request.cookies.get(gateway.settings.session_cookie_name)
    if not token:
        return None
    return decode_session_cookie(token, gateway.settings.session_cookie_secret)


def get_optional_identity(request: Request) -> Optional[Identity]:
    session_id = get_session_id(request)
    if not session_id:
        return None
    return get_gateway(request).session_store.get(session_id)


def require_identity(request: Request) -> Identity:
    """
    Identity of the signed-in user

    Raises:
        SignInRequired: No valid session; the handler starts the OAuth flow
            and returns here afterwards
    """
    identity = get_optional_identity(request)
    if identity is None:
        return_to = request.url.path
        if request.url.query:
            return_to = f"{return_to}?{request.url.query}"
        raise SignInRequired(return_to)
    return identity
