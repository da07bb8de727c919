"""
Tests for the in-memory session store
"""

import asyncio
import gc

from camel_gateway.app.models.document import Identity
from camel_gateway.app.services.onshape.session_store import SessionStore


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _identity(token="access-1"):
    return Identity(access_token=token, refresh_token="refresh-1")


def test_put_and_get():
    store = SessionStore()
    identity = _identity()
    store.put("sid", identity)
    assert store.get("sid") is identity
    assert store.get("other") is None


def test_update_mutates_shared_identity():
    store = SessionStore()
    identity = _identity()
    store.put("sid", identity)

    store.update(identity, "access-2", "refresh-2")

    assert store.get("sid").access_token == "access-2"
    assert identity.refresh_token == "refresh-2"


def test_update_keeps_refresh_token_when_provider_does_not_rotate():
    store = SessionStore()
    identity = _identity()
    store.update(identity, "access-2", None)
    assert identity.refresh_token == "refresh-1"


def test_sessions_expire_after_ttl():
    clock = FakeClock()
    store = SessionStore(ttl_seconds=60, clock=clock)
    store.put("sid", _identity())

    clock.now += 61
    assert store.get("sid") is None
    assert len(store) == 0


def test_access_renews_expiry():
    clock = FakeClock()
    store = SessionStore(ttl_seconds=60, clock=clock)
    store.put("sid", _identity())

    clock.now += 50
    assert store.get("sid") is not None
    clock.now += 50
    assert store.get("sid") is not None


def test_prune_removes_only_expired_sessions():
    clock = FakeClock()
    store = SessionStore(ttl_seconds=60, clock=clock)
    store.put("old", _identity())
    clock.now += 30
    store.put("new", _identity("access-2"))
    clock.now += 40

    assert store.prune() == 1
    assert store.get("new") is not None
    assert store.get("old") is None


def test_delete_signs_out():
    store = SessionStore()
    store.put("sid", _identity())
    store.delete("sid")
    store.delete("sid")
    assert store.get("sid") is None


def test_refresh_lock_is_per_identity():
    store = SessionStore()
    first, second = _identity(), _identity()

    async def locks():
        return store.refresh_lock(first), store.refresh_lock(first), store.refresh_lock(second)

    a, b, c = asyncio.run(locks())
    assert a is b
    assert a is not c


def test_new_session_ids_are_unique():
    assert SessionStore.new_session_id() != SessionStore.new_session_id()


def test_refresh_state_is_released_with_the_identity():
    store = SessionStore()
    identity = _identity()
    store.put("sid", identity)

    async def lock():
        return store.refresh_lock(identity)

    asyncio.run(lock())
    store.mark_refresh_failed(identity, "access-1")
    store.delete("sid")
    del identity
    gc.collect()

    assert len(store._refresh_gates) == 0


def test_refresh_failure_is_remembered_until_tokens_change():
    store = SessionStore()
    identity = _identity()
    store.mark_refresh_failed(identity, "access-1")

    assert store.refresh_failed(identity, "access-1")
    assert not store.refresh_failed(identity, "access-0")
    store.update(identity, "access-2", None)
    assert not store.refresh_failed(identity, "access-1")
