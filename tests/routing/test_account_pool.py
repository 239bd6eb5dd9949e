from datetime import UTC, datetime, timedelta

import pytest

from gateway.catalog import ModelCatalog
from gateway.models import ProviderAccount, User
from gateway.provider.kinds import ProviderKind
from gateway.routing.account_pool import AccountPool, health_indicator
from gateway.schemas.provider_account import HealthIndicator
from tests.utils import make_session_factory, seed_account

T0 = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def test_health_indicator_rule():
    second = timedelta(seconds=1)
    assert health_indicator(None, None, T0) is HealthIndicator.NORMAL
    assert health_indicator(None, T0, T0) is HealthIndicator.NORMAL
    assert health_indicator(T0, None, T0 + second) is HealthIndicator.ERROR
    assert health_indicator(T0, T0 - second, T0 + second) is HealthIndicator.ERROR
    assert health_indicator(T0, T0 + second, T0 + second) is HealthIndicator.WARNING
    assert health_indicator(T0, T0 + second, T0 + timedelta(hours=6)) is HealthIndicator.NORMAL


def test_health_indicator_accepts_naive_datetimes():
    naive = T0.replace(tzinfo=None)
    assert (
        health_indicator(naive, naive + timedelta(seconds=1), T0 + timedelta(minutes=1))
        is HealthIndicator.WARNING
    )


@pytest.fixture()
def pool_env():
    engine, SessionLocal = make_session_factory()
    catalog = ModelCatalog.from_entries(
        [{"id": "shared", "providers": ["iflow", "ollama_cloud"]}]
    )
    with SessionLocal() as session:
        user = User(email="pool@example.com")
        other = User(email="other@example.com")
        session.add_all([user, other])
        session.commit()
        user_id, other_id = user.id, other.id
    yield SessionLocal, catalog, user_id, other_id
    engine.dispose()


def test_candidates_follow_eligibility_then_lru(pool_env):
    SessionLocal, catalog, user_id, other_id = pool_env
    with SessionLocal() as session:
        ollama = seed_account(session, user_id=user_id, provider=ProviderKind.OLLAMA_CLOUD)
        used_late = seed_account(
            session,
            user_id=user_id,
            provider=ProviderKind.IFLOW,
            last_used_at=T0 + timedelta(minutes=5),
        )
        used_early = seed_account(
            session, user_id=user_id, provider=ProviderKind.IFLOW, last_used_at=T0
        )
        never_used = seed_account(session, user_id=user_id, provider=ProviderKind.IFLOW)
        seed_account(session, user_id=user_id, provider=ProviderKind.IFLOW, is_active=False)
        seed_account(session, user_id=user_id, provider=ProviderKind.COPILOT)
        seed_account(session, user_id=other_id, provider=ProviderKind.IFLOW)

        pool = AccountPool(session, catalog)
        ordered = [c.account_id for c in pool.ordered_candidates(user_id, "shared")]

        assert ordered == [never_used.id, used_early.id, used_late.id, ollama.id]
        assert ordered == [c.account_id for c in pool.ordered_candidates(user_id, "shared")]

        pinned = pool.ordered_candidates(user_id, "shared", (ProviderKind.OLLAMA_CLOUD,))
        assert [c.account_id for c in pinned] == [ollama.id]
        assert pool.ordered_candidates(user_id, "unknown-model") == []


def test_mark_attempt_success_and_failure(pool_env):
    SessionLocal, catalog, user_id, _ = pool_env
    clock_values = iter([T0, T0 + timedelta(seconds=1), T0 + timedelta(seconds=2)])
    with SessionLocal() as session:
        account = seed_account(session, user_id=user_id, provider=ProviderKind.IFLOW)
        pool = AccountPool(session, catalog, clock=lambda: next(clock_values))

        pool.mark_attempt(account.id)
        pool.mark_failure(account.id)
        pool.mark_success(account.id)

        session.expire_all()
        stored = session.get(ProviderAccount, account.id)
        assert stored.request_count == 1
        assert stored.last_used_at.replace(tzinfo=UTC) == T0
        assert stored.last_error_at.replace(tzinfo=UTC) == T0 + timedelta(seconds=1)
        assert stored.last_success_at.replace(tzinfo=UTC) == T0 + timedelta(seconds=2)


def test_attempt_stamp_moves_account_to_back_of_queue(pool_env):
    SessionLocal, catalog, user_id, _ = pool_env
    with SessionLocal() as session:
        first = seed_account(session, user_id=user_id, provider=ProviderKind.IFLOW)
        second = seed_account(session, user_id=user_id, provider=ProviderKind.IFLOW)
        pool = AccountPool(session, catalog, clock=lambda: T0)

        head = pool.ordered_candidates(user_id, "shared")[0].account_id
        pool.mark_attempt(head)
        session.expire_all()

        ordered = [c.account_id for c in pool.ordered_candidates(user_id, "shared")]
        assert ordered[-1] == head
        assert set(ordered[:2]) == {first.id, second.id}
