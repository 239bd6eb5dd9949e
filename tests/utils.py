from __future__ import annotations

import fnmatch
from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from gateway.catalog import CatalogHolder, ModelCatalog
from gateway.db import get_db_session
from gateway.deps import (
    get_catalog_holder,
    get_db,
    get_redis,
    get_session_verifier,
    get_transports,
    get_vault,
)
from gateway.models import APIKey, Base, ProviderAccount, User
from gateway.provider.kinds import ProviderKind
from gateway.provider.streaming import TokenUsage, UpstreamStream
from gateway.provider.transport import (
    AccountCredential,
    ChatRequest,
    TransportError,
    TransportRegistry,
    TransportResponse,
)
from gateway.routing.access_control import JwtSessionVerifier
from gateway.services.api_key_service import build_api_key_prefix
from gateway.services.vault import CredentialVault
from gateway.settings import settings

TEST_SECRET = "test-secret"
TEST_VAULT = CredentialVault(CredentialVault.generate_key(), TEST_SECRET)
TEST_VERIFIER = JwtSessionVerifier(TEST_SECRET)


def make_session_factory() -> tuple[Any, sessionmaker[Session]]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )
    return engine, SessionLocal


def install_inmemory_db(
    app,
    *,
    token_plain: str = "sk-timeline",
    catalog: ModelCatalog | None = None,
) -> sessionmaker[Session]:
    """
    Attach an in-memory SQLite database, fake Redis, fake transports and a test
    vault to the FastAPI app, then seed a default user with one API key.
    """

    _, SessionLocal = make_session_factory()

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_db_session] = override_get_db

    redis = InMemoryRedis()
    app.state._test_redis = redis

    async def override_get_redis():
        return redis

    app.dependency_overrides[get_redis] = override_get_redis

    transports = {kind: FakeTransport() for kind in ProviderKind}
    app.state._test_transports = transports
    registry = TransportRegistry(transports)
    holder = CatalogHolder(catalog=catalog)

    app.dependency_overrides[get_transports] = lambda: registry
    app.dependency_overrides[get_catalog_holder] = lambda: holder
    app.dependency_overrides[get_vault] = lambda: TEST_VAULT
    app.dependency_overrides[get_session_verifier] = lambda: TEST_VERIFIER

    with SessionLocal() as session:
        user, api_key = seed_user_and_key(session, token_plain=token_plain)
        app.state._test_user_id = user.id
        app.state._test_api_key_id = api_key.id

    return SessionLocal


def seed_user_and_key(
    session: Session,
    *,
    token_plain: str,
    email: str = "owner@example.com",
    vault: CredentialVault = TEST_VAULT,
    **key_fields: Any,
) -> tuple[User, APIKey]:
    user = User(email=email, display_name=email.split("@")[0], is_active=True)
    session.add(user)
    session.flush()

    api_key = APIKey(
        user_id=user.id,
        name=key_fields.pop("name", "default-key"),
        key_hash=vault.hash(token_plain),
        key_prefix=build_api_key_prefix(token_plain),
        encrypted_key=vault.encrypt(token_plain),
        **key_fields,
    )
    session.add(api_key)
    session.commit()
    session.refresh(user)
    session.refresh(api_key)
    session.expunge(user)
    session.expunge(api_key)

    return user, api_key


def seed_account(
    session: Session,
    *,
    user_id,
    provider: ProviderKind,
    secret: str = "upstream-token",
    vault: CredentialVault = TEST_VAULT,
    **fields: Any,
) -> ProviderAccount:
    account = ProviderAccount(
        user_id=user_id,
        provider=provider.value,
        encrypted_credential=fields.pop("encrypted_credential", None) or vault.encrypt(secret),
        **fields,
    )
    session.add(account)
    session.commit()
    session.refresh(account)
    session.expunge(account)
    return account


def auth_headers(token_plain: str = "sk-timeline") -> dict[str, str]:
    """生成 API Key 格式的认证头（用于 /v1 路由）"""
    return {"Authorization": f"Bearer {token_plain}"}


def session_cookies(user_id) -> dict[str, str]:
    """生成控制台会话 Cookie（用于 /api 路由）"""
    return {settings.session_cookie_name: TEST_VERIFIER.issue(user_id)}


def chat_body(content: str = "hi", usage: tuple[int, int] = (3, 5)) -> dict[str, Any]:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": usage[0], "completion_tokens": usage[1]},
    }


async def _iter_chunks(chunks: list[Any]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        if isinstance(chunk, Exception):
            raise chunk
        yield chunk


class FakeTransport:
    """
    Scripted transport. Each queued outcome is consumed by one call:
    an int raises TransportError(status), an exception is raised as is, a dict
    is a JSON body, a list of bytes is an accepted stream (an exception inside
    the list breaks the stream at that point).
    """

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes: list[Any] = list(outcomes)
        self.calls: list[tuple[AccountCredential, ChatRequest]] = []
        self.streams_closed = 0

    def queue(self, *outcomes: Any) -> "FakeTransport":
        self.outcomes.extend(outcomes)
        return self

    def _next(self, account: AccountCredential, request: ChatRequest) -> Any:
        self.calls.append((account, request))
        if not self.outcomes:
            raise TransportError(500, "no scripted outcome")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, int):
            raise TransportError(outcome, f"scripted {outcome}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def send(self, account: AccountCredential, request: ChatRequest) -> TransportResponse:
        body = self._next(account, request)
        return TransportResponse(status_code=200, body=body, usage=TokenUsage.from_payload(body))

    async def open_stream(self, account: AccountCredential, request: ChatRequest) -> UpstreamStream:
        chunks = self._next(account, request)

        async def _closed() -> None:
            self.streams_closed += 1

        return UpstreamStream(_iter_chunks(chunks), on_close=_closed)


class InMemoryRedis:
    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}

    async def get(self, key: str):
        return self._data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None):
        self._data[key] = value
        self.ttls[key] = ex

    async def exists(self, *keys: str) -> int:
        """返回存在的 key 数量，模拟 Redis exists 行为。"""
        return sum(1 for key in keys if key in self._data)

    async def keys(self, pattern: str):
        """使用 fnmatch 实现简单模式匹配。"""
        return [k for k in self._data.keys() if fnmatch.fnmatch(k, pattern)]

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if key in self._data:
                removed += 1
                self._data.pop(key, None)
                self.ttls.pop(key, None)
        return removed
