"""
Candidate selection over a user's provider accounts, plus health bookkeeping.

Health fields are written with single-row UPDATE statements so concurrent
requests never read-modify-write the same row; last writer wins.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gateway.catalog import ModelCatalog
from gateway.logging_config import logger
from gateway.models import ProviderAccount, as_utc, utcnow
from gateway.provider.kinds import ProviderKind
from gateway.schemas.provider_account import HealthIndicator

HEALTH_WINDOW = timedelta(hours=5)

Clock = Callable[[], datetime]


def health_indicator(
    last_error_at: datetime | None,
    last_success_at: datetime | None,
    now: datetime,
    *,
    window: timedelta = HEALTH_WINDOW,
) -> HealthIndicator:
    last_error_at = as_utc(last_error_at)
    last_success_at = as_utc(last_success_at)
    now = as_utc(now)
    if last_error_at is None:
        return HealthIndicator.NORMAL
    if last_success_at is None or last_success_at <= last_error_at:
        return HealthIndicator.ERROR
    if now - last_error_at < window:
        return HealthIndicator.WARNING
    return HealthIndicator.NORMAL


@dataclass(frozen=True)
class Candidate:
    """Snapshot of one account taken at selection time."""

    account_id: UUID
    provider: ProviderKind
    encrypted_credential: str
    label: str | None = None


_EPOCH = datetime.min.replace(tzinfo=UTC)


def _lru_key(account: ProviderAccount) -> tuple:
    last_used = as_utc(account.last_used_at)
    return (
        last_used is not None,
        last_used or _EPOCH,
        as_utc(account.created_at) or _EPOCH,
        str(account.id),
    )


class AccountPool:
    def __init__(self, db: Session, catalog: ModelCatalog, clock: Clock = utcnow) -> None:
        self.db = db
        self.catalog = catalog
        self.clock = clock

    def ordered_candidates(
        self,
        user_id: UUID,
        canonical_id: str,
        providers: Sequence[ProviderKind] | None = None,
    ) -> list[Candidate]:
        """
        Active accounts of `user_id` able to serve `canonical_id`.

        Provider groups follow `providers` (defaults to the catalog's
        eligibility order); inside a group the least recently used account
        comes first, never-used accounts before all others.
        """
        eligible = tuple(providers) if providers is not None else self.catalog.eligible_providers(
            canonical_id
        )
        if not eligible:
            return []

        stmt = select(ProviderAccount).where(
            ProviderAccount.user_id == user_id,
            ProviderAccount.is_active.is_(True),
            ProviderAccount.provider.in_([p.value for p in eligible]),
        )
        by_provider: dict[str, list[ProviderAccount]] = {}
        for account in self.db.execute(stmt).scalars().all():
            by_provider.setdefault(account.provider, []).append(account)

        ordered: list[Candidate] = []
        for kind in eligible:
            for account in sorted(by_provider.get(kind.value, []), key=_lru_key):
                ordered.append(
                    Candidate(
                        account_id=account.id,
                        provider=kind,
                        encrypted_credential=account.encrypted_credential,
                        label=account.label,
                    )
                )
        return ordered

    def _apply(self, account_id: UUID, action: str, **values) -> None:
        try:
            self.db.execute(
                update(ProviderAccount)
                .where(ProviderAccount.id == account_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning("account %s: failed to %s", account_id, action, exc_info=True)

    def mark_attempt(self, account_id: UUID) -> None:
        self._apply(
            account_id,
            "stamp attempt",
            last_used_at=self.clock(),
            request_count=ProviderAccount.request_count + 1,
        )

    def mark_success(self, account_id: UUID) -> None:
        self._apply(account_id, "record success", last_success_at=self.clock())

    def mark_failure(self, account_id: UUID) -> None:
        self._apply(account_id, "record failure", last_error_at=self.clock())


__all__ = ["AccountPool", "Candidate", "HEALTH_WINDOW", "health_indicator"]
