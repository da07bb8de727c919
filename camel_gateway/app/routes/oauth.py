"""
OAuth 2.0 sign-in routes

Handles the Onshape OAuth flow:
- Redirect to the Onshape access grant page
- Handle the OAuth callback and bind the Identity to a new session
- Sign out
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from camel_gateway.app.core.gateway import Gateway
from camel_gateway.app.dependencies.auth import (
    clear_session_cookie,
    get_gateway,
    get_session_id,
    set_session_cookie,
)
from camel_gateway.app.models.document import Identity
from camel_gateway.app.services.onshape.oauth_manager import TokenExchangeError
from camel_gateway.app.shared.pages import render_oauth_denied

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/oauth", tags=["oauth"])


def get_redirect_uri(request: Request, gateway: Gateway) -> str:
    """Absolute URL of the OAuth callback"""
    settings = gateway.settings
    if settings.external_hostname:
        return f"https://{settings.external_hostname}{settings.callback_path}"
    base_url = str(request.base_url).rstrip("/")
    return f"{base_url}{settings.callback_path}"


def start_sign_in(request: Request, gateway: Gateway, return_to: Optional[str]) -> RedirectResponse:
    """Redirect to the Onshape grant page, remembering where to come back to"""
    state = gateway.oauth_manager.generate_state_token(return_to)
    auth_url = gateway.oauth_manager.build_authorization_url(get_redirect_uri(request, gateway), state)
    return RedirectResponse(url=auth_url, status_code=302)


@router.get("/signin")
async def oauth_signin(
    request: Request,
    redirect_onshape_uri: Optional[str] = Query(None, alias="redirectOnshapeUri"),
    gateway: Gateway = Depends(get_gateway),
):
    """
    Called by Onshape when the user grants this application access

    The optional redirectOnshapeUri tells us how to get back to Onshape once
    the flow has completed.
    """
    return start_sign_in(request, gateway, redirect_onshape_uri)


@router.get("/redirect")
async def oauth_redirect(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    gateway: Gateway = Depends(get_gateway),
):
    """Called by Onshape with the result of the sign-in request"""
    if error or not code:
        logger.warning(f"OAuth sign-in denied: {error or 'no authorization code'}")
        return RedirectResponse(url="/oauth/denied", status_code=302)

    state_data = gateway.oauth_manager.consume_state_token(state)
    if state_data is None:
        logger.warning("OAuth callback with unknown or expired state")
        return RedirectResponse(url="/oauth/denied", status_code=302)

    try:
        tokens = await gateway.oauth_manager.exchange_code_for_token(
            code, get_redirect_uri(request, gateway)
        )
        profile = await gateway.oauth_manager.fetch_user_profile(tokens.access_token)
    except TokenExchangeError as e:
        logger.error(f"OAuth sign-in failed: {e}")
        return RedirectResponse(url="/oauth/denied", status_code=302)

    identity = Identity(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        profile=profile,
    )

    # Failures from here on are internal errors and surface as 500
    previous_session_id = get_session_id(request)
    if previous_session_id:
        gateway.session_store.delete(previous_session_id)
    session_id = gateway.session_store.new_session_id()
    gateway.session_store.put(session_id, identity)

    response = RedirectResponse(url=state_data.get("return_to") or "/", status_code=302)
    set_session_cookie(response, gateway, session_id)
    logger.info(f"User {identity.display_name} signed in")
    return response


@router.get("/denied")
async def oauth_denied():
    """Shown when the user denies authorization to the application"""
    return render_oauth_denied()


@router.get("/signout")
async def oauth_signout(request: Request, gateway: Gateway = Depends(get_gateway)):
    session_id = get_session_id(request)
    if session_id:
        gateway.session_store.delete(session_id)
    response = RedirectResponse(url=gateway.settings.main_page_redirect, status_code=302)
    clear_session_cookie(response, gateway)
    return response
