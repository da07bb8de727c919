"""
Gateway service container

Wires the session store, OAuth manager, evaluation client, refresh
interceptor and file resolver together. One instance lives on app.state.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from camel_gateway.app.core.config import GatewaySettings
from camel_gateway.app.services.onshape.evaluation_client import EvaluationClient
from camel_gateway.app.services.onshape.file_resolver import FileResolver
from camel_gateway.app.services.onshape.oauth_manager import OnshapeOAuthManager, TokenProvider
from camel_gateway.app.services.onshape.refresh_interceptor import RefreshingEvaluator
from camel_gateway.app.services.onshape.session_store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    settings: GatewaySettings
    session_store: SessionStore
    oauth_manager: OnshapeOAuthManager
    evaluation_client: EvaluationClient
    evaluator: RefreshingEvaluator
    resolver: FileResolver

    @classmethod
    def build(
        cls,
        settings: GatewaySettings,
        http_client: Optional[httpx.AsyncClient] = None,
        token_provider: Optional[TokenProvider] = None,
    ) -> "Gateway":
        """
        Build the service graph

        Args:
            settings: Gateway settings
            http_client: Shared client for all outbound calls (tests pass a mock transport)
            token_provider: Overrides the OAuth manager for token refreshes
        """
        session_store = SessionStore(ttl_seconds=settings.session_ttl_seconds)
        oauth_manager = OnshapeOAuthManager(settings, http_client=http_client)
        evaluation_client = EvaluationClient(
            settings.api_base_url,
            timeout=settings.evaluation_timeout_seconds,
            http_client=http_client,
        )
        evaluator = RefreshingEvaluator(
            evaluation_client,
            token_provider or oauth_manager,
            session_store,
        )
        return cls(
            settings=settings,
            session_store=session_store,
            oauth_manager=oauth_manager,
            evaluation_client=evaluation_client,
            evaluator=evaluator,
            resolver=FileResolver(evaluator),
        )

    async def aclose(self) -> None:
        await self.evaluation_client.aclose()
        await self.oauth_manager.aclose()
