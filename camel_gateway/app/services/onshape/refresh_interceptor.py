"""
Token refresh around the evaluation client

Each logical evaluate() call runs a small state machine:

    INITIAL    --401-->  REFRESHING  --ok-->  RETRYING  --401-->  AuthError
       |                     |                   |
    success/error        AuthError          success/error

so a call exchanges the refresh token at most once. Refreshes for the same
Identity are serialized; a caller that was waiting while another request
refreshed reuses the new token instead of spending the refresh token again.
A failed exchange is shared the same way: callers rejected with the same
access token raise AuthError without contacting the token endpoint.
"""

import logging
from enum import Enum
from typing import Optional

from camel_gateway.app.models.document import DocumentContext, Identity
from camel_gateway.app.models.typed_value import TypedValue
from camel_gateway.app.services.onshape.errors import AuthError, UnauthorizedResponse
from camel_gateway.app.services.onshape.evaluation_client import EvaluationClient
from camel_gateway.app.services.onshape.oauth_manager import TokenExchangeError, TokenProvider
from camel_gateway.app.services.onshape.session_store import SessionStore

logger = logging.getLogger(__name__)


class CallState(str, Enum):
    INITIAL = "initial"
    REFRESHING = "refreshing"
    RETRYING = "retrying"


class RefreshingEvaluator:
    """Evaluation client wrapper that recovers once from an expired access token"""

    def __init__(self, client: EvaluationClient, token_provider: TokenProvider, session_store: SessionStore):
        self.client = client
        self.token_provider = token_provider
        self.session_store = session_store

    async def evaluate(self, context: DocumentContext, script: str) -> Optional[TypedValue]:
        identity = context.identity
        if identity is None:
            raise AuthError("No signed-in user for this request")

        state = CallState.INITIAL
        while True:
            rejected_token = identity.access_token
            try:
                return await self.client.evaluate(context, script)
            except UnauthorizedResponse:
                if state is CallState.RETRYING:
                    logger.error("Onshape rejected the refreshed access token")
                    raise AuthError("Onshape rejected the refreshed access token")
                logger.warning("Access token rejected, attempting token refresh")
                state = CallState.REFRESHING

            await self._refresh(identity, rejected_token)
            state = CallState.RETRYING

    async def _refresh(self, identity: Identity, rejected_token: str) -> None:
        store = self.session_store
        async with store.refresh_lock(identity):
            if identity.access_token != rejected_token:
                logger.info("Access token was refreshed by a concurrent request, reusing it")
                return
            if store.refresh_failed(identity, rejected_token):
                raise AuthError("Token refresh already failed for this session")

            if not identity.refresh_token:
                raise AuthError("Access token expired and no refresh token is available")

            try:
                tokens = await self.token_provider.refresh_access_token(identity.refresh_token)
            except TokenExchangeError as e:
                store.mark_refresh_failed(identity, rejected_token)
                logger.error(f"Failed to refresh access token: {e}")
                raise AuthError(f"Token refresh failed: {e}") from e

            store.update(identity, tokens.access_token, tokens.refresh_token)
            logger.info(f"Refreshed access token for {identity.display_name}")
