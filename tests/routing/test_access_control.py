import json
from datetime import UTC, datetime, timedelta

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from gateway.catalog import ModelCatalog
from gateway.errors import AuthError, AuthErrorReason
from gateway.models import APIKey, DisabledModel, User
from gateway.routing.access_control import (
    AccessControl,
    ApiKeyCredential,
    ModelVisibility,
    Principal,
    SessionCredential,
    resolve_credential,
)
from gateway.schemas.api_key import ModelAccessMode
from gateway.services.api_key_cache import CACHE_KEY_TEMPLATE
from tests.utils import (
    TEST_VAULT,
    TEST_VERIFIER,
    InMemoryRedis,
    make_session_factory,
    seed_user_and_key,
)

CATALOG = ModelCatalog.from_entries(
    [
        {"id": "alpha", "providers": ["iflow"], "aliases": ["alpha-latest"]},
        {"id": "beta", "providers": ["iflow"]},
        {"id": "gamma", "providers": ["kiro"]},
    ]
)


class BrokenRedis:
    async def get(self, key):
        raise RedisConnectionError("redis down")

    async def set(self, key, value, ex=None):
        raise RedisConnectionError("redis down")

    async def delete(self, *keys):
        raise RedisConnectionError("redis down")


@pytest.fixture()
def session_factory():
    engine, SessionLocal = make_session_factory()
    yield SessionLocal
    engine.dispose()


def _access(session, redis=None) -> AccessControl:
    return AccessControl(session, redis or InMemoryRedis(), TEST_VAULT, CATALOG, TEST_VERIFIER)


def test_resolve_credential_prefers_api_key_headers():
    assert resolve_credential("Bearer sk-1", "sk-2", "cookie") == ApiKeyCredential("sk-1")
    assert resolve_credential(None, "sk-2", "cookie") == ApiKeyCredential("sk-2")
    assert resolve_credential(None, None, "cookie") == SessionCredential("cookie")
    assert resolve_credential(None, "  ", None) is None

    with pytest.raises(AuthError) as exc_info:
        resolve_credential("Basic abc", None, None)
    assert exc_info.value.reason is AuthErrorReason.INVALID


def test_model_visibility_is_conjunctive():
    whitelist = ModelVisibility(
        ModelAccessMode.WHITELIST, frozenset({"alpha", "beta"}), frozenset({"beta"})
    )
    assert whitelist.allows("alpha")
    assert not whitelist.allows("beta")
    assert not whitelist.allows("gamma")

    blacklist = ModelVisibility(ModelAccessMode.BLACKLIST, frozenset({"alpha"}))
    assert not blacklist.allows("alpha")
    assert blacklist.allows("gamma")

    assert not ModelVisibility(ModelAccessMode.WHITELIST).allows("alpha")
    assert ModelVisibility().allows("anything")


@pytest.mark.asyncio
async def test_missing_credential(session_factory):
    with session_factory() as session:
        with pytest.raises(AuthError) as exc_info:
            await _access(session).authenticate(None)
    assert exc_info.value.reason is AuthErrorReason.MISSING


@pytest.mark.asyncio
async def test_api_key_authentication_caches_and_touches_last_used(session_factory):
    redis = InMemoryRedis()
    with session_factory() as session:
        user, key = seed_user_and_key(
            session,
            token_plain="sk-valid",
            model_access_mode="whitelist",
            model_access_list=["alpha"],
        )
        principal = await _access(session, redis).authenticate(ApiKeyCredential("sk-valid"))

        assert principal.user_id == user.id
        assert principal.api_key_id == key.id
        assert principal.model_access_mode is ModelAccessMode.WHITELIST
        cache_key = CACHE_KEY_TEMPLATE.format(key_hash=TEST_VAULT.hash("sk-valid"))
        cached = json.loads(await redis.get(cache_key))
        assert cached["id"] == str(key.id)

        session.expire_all()
        assert session.get(APIKey, key.id).last_used_at is not None

        # second call is served from the cache
        again = await _access(session, redis).authenticate(ApiKeyCredential("sk-valid"))
        assert again == principal


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("fields", "reason"),
    [
        ({"is_active": False}, AuthErrorReason.REVOKED),
        ({"expires_at": datetime.now(UTC) - timedelta(minutes=1)}, AuthErrorReason.EXPIRED),
    ],
)
async def test_api_key_rejections(session_factory, fields, reason):
    with session_factory() as session:
        seed_user_and_key(session, token_plain="sk-bad", **fields)
        with pytest.raises(AuthError) as exc_info:
            await _access(session).authenticate(ApiKeyCredential("sk-bad"))
    assert exc_info.value.reason is reason
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_unknown_key_and_inactive_owner(session_factory):
    with session_factory() as session:
        user, _ = seed_user_and_key(session, token_plain="sk-owner")
        with pytest.raises(AuthError) as exc_info:
            await _access(session).authenticate(ApiKeyCredential("sk-unknown"))
        assert exc_info.value.reason is AuthErrorReason.INVALID

        stored = session.get(User, user.id)
        stored.is_active = False
        session.commit()
        with pytest.raises(AuthError) as exc_info:
            await _access(session).authenticate(ApiKeyCredential("sk-owner"))
        assert exc_info.value.reason is AuthErrorReason.REVOKED


@pytest.mark.asyncio
async def test_cache_outage_falls_back_to_database(session_factory):
    with session_factory() as session:
        user, _ = seed_user_and_key(session, token_plain="sk-db")
        principal = await _access(session, BrokenRedis()).authenticate(ApiKeyCredential("sk-db"))
    assert principal.user_id == user.id


@pytest.mark.asyncio
async def test_session_authentication(session_factory):
    with session_factory() as session:
        user, _ = seed_user_and_key(session, token_plain="sk-any")
        principal = await _access(session).authenticate(
            SessionCredential(TEST_VERIFIER.issue(user.id))
        )
        assert principal.user_id == user.id
        assert principal.api_key_id is None
        assert principal.model_access_mode is ModelAccessMode.ALL

        expired = TEST_VERIFIER.issue(user.id, expires_in=timedelta(seconds=-5))
        with pytest.raises(AuthError) as exc_info:
            await _access(session).authenticate(SessionCredential(expired))
        assert exc_info.value.reason is AuthErrorReason.EXPIRED

        with pytest.raises(AuthError) as exc_info:
            await _access(session).authenticate(SessionCredential("not-a-jwt"))
        assert exc_info.value.reason is AuthErrorReason.INVALID


def test_model_visibility_folds_disabled_aliases(session_factory):
    with session_factory() as session:
        user, _ = seed_user_and_key(session, token_plain="sk-vis")
        session.add(DisabledModel(user_id=user.id, model="alpha-latest"))
        session.commit()

        visibility = _access(session).model_visibility(
            Principal(
                user_id=user.id,
                model_access_mode=ModelAccessMode.BLACKLIST,
                model_access_list=("gamma",),
            )
        )
    assert visibility.disabled == frozenset({"alpha"})
    assert not visibility.allows("alpha")
    assert visibility.allows("beta")
    assert not visibility.allows("gamma")
