"""
Tests for refresh-and-retry on expired access tokens
"""

import asyncio
from dataclasses import replace

import pytest

from camel_gateway.app.services.onshape.errors import AuthError, TransportError
from camel_gateway.app.services.onshape.evaluation_client import EvaluationClient
from camel_gateway.app.services.onshape.oauth_manager import OnshapeOAuthManager, TokenExchangeError, TokenPair
from camel_gateway.app.services.onshape.refresh_interceptor import RefreshingEvaluator
from camel_gateway.app.services.onshape.session_store import SessionStore

from .fake_onshape import API_BASE, FakeOnshape

SCRIPT = 'getVariable(context, "camelState") keys(state.files)'


def _evaluator(fake: FakeOnshape, settings, store=None) -> RefreshingEvaluator:
    http_client = fake.client()
    return RefreshingEvaluator(
        EvaluationClient(API_BASE, http_client=http_client),
        OnshapeOAuthManager(settings, http_client=http_client),
        store or SessionStore(),
    )


def test_valid_token_needs_no_refresh(fake, settings, context):
    result = asyncio.run(_evaluator(fake, settings).evaluate(context, SCRIPT))
    assert result is not None
    assert len(fake.evaluation_requests) == 1
    assert fake.token_requests == []


def test_single_401_refreshes_once_and_retries(fake, settings, context, identity):
    fake.valid_tokens = set()

    result = asyncio.run(_evaluator(fake, settings).evaluate(context, SCRIPT))

    assert result is not None
    assert len(fake.token_requests) == 1
    assert fake.token_requests[0] == {"grant_type": "refresh_token", "refresh_token": "refresh-1"}
    assert len(fake.evaluation_requests) == 2
    assert fake.evaluation_requests[0].headers["Authorization"] == "Bearer access-1"
    assert fake.evaluation_requests[1].headers["Authorization"] == "Bearer access-2"
    assert identity.access_token == "access-2"
    assert identity.refresh_token == "refresh-for-access-2"


def test_second_401_raises_auth_error_after_one_exchange(fake, settings, context):
    fake.valid_tokens = set()
    fake.accept_issued_tokens = False

    with pytest.raises(AuthError):
        asyncio.run(_evaluator(fake, settings).evaluate(context, SCRIPT))
    assert len(fake.token_requests) == 1
    assert len(fake.evaluation_requests) == 2


def test_failed_refresh_exchange_raises_auth_error(fake, settings, context):
    fake.valid_tokens = set()
    fake.refresh_fails = True

    with pytest.raises(AuthError):
        asyncio.run(_evaluator(fake, settings).evaluate(context, SCRIPT))
    assert len(fake.evaluation_requests) == 1


def test_missing_refresh_token_raises_auth_error(fake, settings, context, identity):
    fake.valid_tokens = set()
    identity.refresh_token = None

    with pytest.raises(AuthError):
        asyncio.run(_evaluator(fake, settings).evaluate(context, SCRIPT))
    assert fake.token_requests == []


def test_missing_identity_raises_auth_error(fake, settings, context):
    with pytest.raises(AuthError):
        asyncio.run(_evaluator(fake, settings).evaluate(replace(context, identity=None), SCRIPT))
    assert fake.evaluation_requests == []


def test_non_401_errors_are_not_retried(fake, settings, context):
    fake.evaluation_status = 503

    with pytest.raises(TransportError) as exc_info:
        asyncio.run(_evaluator(fake, settings).evaluate(context, SCRIPT))
    assert exc_info.value.status == 503
    assert len(fake.evaluation_requests) == 1
    assert fake.token_requests == []


class CountingTokenProvider:
    """Token provider that suspends during the exchange so calls overlap"""

    def __init__(self, fake: FakeOnshape):
        self.fake = fake
        self.exchanges = 0

    async def exchange_code_for_token(self, code, redirect_uri):
        raise TokenExchangeError("not used")

    async def refresh_access_token(self, refresh_token):
        self.exchanges += 1
        await asyncio.sleep(0.01)
        self.fake.valid_tokens.add("shared-new")
        return TokenPair(access_token="shared-new", refresh_token="shared-refresh")


def test_concurrent_401s_share_one_refresh(fake, settings, context, identity):
    fake.valid_tokens = set()
    provider = CountingTokenProvider(fake)
    evaluator = RefreshingEvaluator(
        EvaluationClient(API_BASE, http_client=fake.client()), provider, SessionStore()
    )

    async def run_both():
        return await asyncio.gather(
            evaluator.evaluate(context, SCRIPT),
            evaluator.evaluate(context, SCRIPT),
        )

    results = asyncio.run(run_both())

    assert all(result is not None for result in results)
    assert provider.exchanges == 1
    assert identity.access_token == "shared-new"
    assert len(fake.evaluation_requests) == 4


class FailingTokenProvider(CountingTokenProvider):
    """Token provider whose exchange is slow and then rejected"""

    async def refresh_access_token(self, refresh_token):
        self.exchanges += 1
        await asyncio.sleep(0.01)
        raise TokenExchangeError("invalid_grant", status_code=400)


def test_concurrent_401s_share_one_failed_refresh(fake, settings, context, identity):
    fake.valid_tokens = set()
    provider = FailingTokenProvider(fake)
    evaluator = RefreshingEvaluator(
        EvaluationClient(API_BASE, http_client=fake.client()), provider, SessionStore()
    )

    async def run_both():
        return await asyncio.gather(
            evaluator.evaluate(context, SCRIPT),
            evaluator.evaluate(context, SCRIPT),
            return_exceptions=True,
        )

    results = asyncio.run(run_both())

    assert all(isinstance(result, AuthError) for result in results)
    assert provider.exchanges == 1
    assert identity.access_token == "access-1"
    assert len(fake.evaluation_requests) == 2


def test_refresh_is_attempted_again_after_tokens_change(fake, settings, context, identity):
    fake.valid_tokens = set()
    provider = FailingTokenProvider(fake)
    store = SessionStore()
    evaluator = RefreshingEvaluator(EvaluationClient(API_BASE, http_client=fake.client()), provider, store)

    with pytest.raises(AuthError):
        asyncio.run(evaluator.evaluate(context, SCRIPT))
    store.update(identity, "access-9", "refresh-9")
    with pytest.raises(AuthError):
        asyncio.run(evaluator.evaluate(context, SCRIPT))

    assert provider.exchanges == 2
