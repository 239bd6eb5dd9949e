from collections.abc import Iterator

from fastapi import Depends, Request
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from .catalog import CatalogHolder, ModelCatalog
from .db import get_db_session
from .provider.transport import TransportRegistry
from .redis_client import get_redis_client
from .routing.access_control import AccessControl, JwtSessionVerifier
from .routing.account_pool import AccountPool
from .routing.dispatcher import DispatchEngine
from .services.usage_recorder import UsageRecorder
from .services.vault import CredentialVault
from .settings import settings


async def get_redis() -> Redis:
    """
    FastAPI dependency that provides the shared Redis client.

    Tests override this with an in-memory fake.
    """
    return get_redis_client()


def get_db() -> Iterator[Session]:
    """
    Provide a synchronous SQLAlchemy session.
    """
    yield from get_db_session()


def get_catalog_holder(request: Request) -> CatalogHolder:
    return request.app.state.catalog_holder


def get_catalog(holder: CatalogHolder = Depends(get_catalog_holder)) -> ModelCatalog:
    # 每个请求固定一个快照，刷新不会影响进行中的请求
    return holder.catalog


def get_vault(request: Request) -> CredentialVault:
    return request.app.state.vault


def get_transports(request: Request) -> TransportRegistry:
    return request.app.state.transports


def get_session_verifier() -> JwtSessionVerifier:
    return JwtSessionVerifier(settings.secret_key, settings.session_token_algorithm)


def get_access_control(
    db: Session = Depends(get_db),
    redis: Redis = Depends(get_redis),
    vault: CredentialVault = Depends(get_vault),
    catalog: ModelCatalog = Depends(get_catalog),
    verifier: JwtSessionVerifier = Depends(get_session_verifier),
) -> AccessControl:
    return AccessControl(db, redis, vault, catalog, verifier)


def get_dispatch_engine(
    db: Session = Depends(get_db),
    catalog: ModelCatalog = Depends(get_catalog),
    vault: CredentialVault = Depends(get_vault),
    transports: TransportRegistry = Depends(get_transports),
) -> DispatchEngine:
    return DispatchEngine(
        catalog=catalog,
        pool=AccountPool(db, catalog),
        transports=transports,
        vault=vault,
        recorder=UsageRecorder(db),
    )


__all__ = [
    "get_access_control",
    "get_catalog",
    "get_catalog_holder",
    "get_db",
    "get_dispatch_engine",
    "get_redis",
    "get_session_verifier",
    "get_transports",
    "get_vault",
]
