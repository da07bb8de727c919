"""
Onshape FeatureScript evaluation client

Posts scripts to the Part Studio featurescript endpoint and decodes the
result. Request and response handling is an explicit pipeline of hooks:

    request hooks:  (httpx.Request, DocumentContext) -> httpx.Request
    response hooks: httpx.Response -> httpx.Response (or raise)

The defaults attach the bearer token and turn error statuses into
TransportError / UnauthorizedResponse.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from camel_gateway.app.models.document import DocumentContext
from camel_gateway.app.models.typed_value import TypedValue, parse_typed_value
from camel_gateway.app.services.onshape.errors import (
    AuthError,
    TransportError,
    UnauthorizedResponse,
)

logger = logging.getLogger(__name__)

RequestHook = Callable[[httpx.Request, DocumentContext], httpx.Request]
ResponseHook = Callable[[httpx.Response], httpx.Response]


class EvaluationRequest(BaseModel):
    """Body of a featurescript evaluation call"""

    script: str
    queries: List[Dict[str, Any]] = []


class EvaluationResponse(BaseModel):
    """The part of the evaluation response the gateway reads"""

    model_config = ConfigDict(extra="allow")

    result: Optional[Dict[str, Any]] = None
    notices: List[Dict[str, Any]] = []


def attach_bearer_token(request: httpx.Request, context: DocumentContext) -> httpx.Request:
    if context.identity is None:
        raise AuthError("No signed-in user for this request")
    request.headers["Authorization"] = f"Bearer {context.identity.access_token}"
    return request


def accept_json(request: httpx.Request, context: DocumentContext) -> httpx.Request:
    request.headers["Accept"] = "application/json"
    return request


def raise_for_error_status(response: httpx.Response) -> httpx.Response:
    if response.status_code == 401:
        raise UnauthorizedResponse(body=response.text)
    if not response.is_success:
        raise TransportError(
            f"Onshape API error: {response.status_code}",
            status=response.status_code,
            body=response.text,
        )
    return response


DEFAULT_REQUEST_HOOKS: Sequence[RequestHook] = (accept_json, attach_bearer_token)
DEFAULT_RESPONSE_HOOKS: Sequence[ResponseHook] = (raise_for_error_status,)


def featurescript_path(context: DocumentContext) -> str:
    return f"/v5/partstudios/{context.element_path}/featurescript"


class EvaluationClient:
    """
    FeatureScript evaluation over the Onshape REST API

    One call to evaluate() is one HTTP request. Timeouts and connection
    failures are reported as TransportError and never retried here.
    """

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        api_base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
        request_hooks: Sequence[RequestHook] = DEFAULT_REQUEST_HOOKS,
        response_hooks: Sequence[ResponseHook] = DEFAULT_RESPONSE_HOOKS,
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None
        self.request_hooks = list(request_hooks)
        self.response_hooks = list(response_hooks)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def build_request(self, context: DocumentContext, script: str) -> httpx.Request:
        params = {}
        if context.configuration:
            params["configuration"] = context.configuration
        request = self._client.build_request(
            "POST",
            f"{self.api_base_url}{featurescript_path(context)}",
            params=params,
            json=EvaluationRequest(script=script).model_dump(),
            timeout=self.timeout,
        )
        for hook in self.request_hooks:
            request = hook(request, context)
        return request

    async def evaluate(self, context: DocumentContext, script: str) -> Optional[TypedValue]:
        """
        Evaluate script against the Part Studio in context

        Returns:
            Decoded result, or None when the script returned nothing or failed

        Raises:
            AuthError: No identity attached to the context
            UnauthorizedResponse: The platform answered 401
            TransportError: Any other non-2xx answer, a timeout or a network error
        """
        request = self.build_request(context, script)
        try:
            response = await self._client.send(request)
        except httpx.TimeoutException as e:
            logger.error(f"Featurescript evaluation timed out for {context.element_path}")
            raise TransportError(f"Onshape request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Featurescript evaluation failed for {context.element_path}: {e}")
            raise TransportError(f"Network error: {e}") from e

        for hook in self.response_hooks:
            response = hook(response)

        try:
            payload = EvaluationResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TransportError(
                "Onshape returned an unreadable evaluation response",
                status=response.status_code,
                body=response.text,
            ) from e

        for notice in payload.notices:
            logger.debug(f"Featurescript notice: {notice}")

        if payload.result is None:
            return None
        return parse_typed_value(payload.result)
