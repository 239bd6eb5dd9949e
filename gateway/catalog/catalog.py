"""
Model catalog: canonical model ids, their aliases and eligible providers.

A `ModelCatalog` is an immutable snapshot. `CatalogHolder` owns the live
snapshot and swaps it wholesale on refresh, so readers never see a
half-built catalog.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError

from gateway.logging_config import logger
from gateway.provider.kinds import ProviderKind

from .builtin import BUILTIN_MODELS


class ModelMeta(BaseModel):
    context_length: int | None = None
    output_limit: int | None = None
    knowledge_cutoff: str | None = None
    release_date: str | None = None
    reasoning: bool | None = None
    tool_call: bool | None = None
    vision: bool | None = None


class CatalogEntry(BaseModel):
    """Raw registry entry as written in the built-in table or the JSON file."""

    id: str = Field(..., min_length=1)
    providers: list[str] = Field(default_factory=list)
    aliases: list[str] = Field(default_factory=list)
    upstream: dict[str, str] = Field(default_factory=dict)
    description: str | None = None
    meta: ModelMeta | None = None


@dataclass(frozen=True)
class CanonicalModel:
    id: str
    providers: tuple[ProviderKind, ...]
    aliases: tuple[str, ...] = ()
    description: str | None = None
    meta: ModelMeta | None = None
    upstream_ids: Mapping[ProviderKind, str] = field(default_factory=dict)

    @property
    def owned_by(self) -> str:
        return ",".join(p.value for p in self.providers)


class ModelCatalog:
    def __init__(
        self,
        models: Sequence[CanonicalModel],
        alias_to_canonical: Mapping[str, str],
    ) -> None:
        self._models: dict[str, CanonicalModel] = {m.id: m for m in models}
        self._order: tuple[CanonicalModel, ...] = tuple(models)
        self._aliases: dict[str, str] = dict(alias_to_canonical)

    @classmethod
    def from_entries(cls, entries: Iterable[CatalogEntry | Mapping[str, Any]]) -> "ModelCatalog":
        """
        Build a catalog. Duplicate canonical ids keep the first-seen entry;
        aliases are first-wins and never shadow a canonical id.
        """
        models: dict[str, CanonicalModel] = {}
        alias_to_canonical: dict[str, str] = {}
        pending_aliases: dict[str, list[str]] = {}

        for raw in entries:
            entry = raw if isinstance(raw, CatalogEntry) else CatalogEntry.model_validate(raw)
            canonical_id = alias_to_canonical.get(entry.id, entry.id)
            if canonical_id in models:
                logger.debug(
                    "catalog: dropping duplicate entry %s (resolves to %s)", entry.id, canonical_id
                )
                continue

            providers = _parse_providers(entry.id, entry.providers)
            if not providers:
                logger.warning("catalog: model %s has no known providers; skipped", entry.id)
                continue

            upstream_ids: dict[ProviderKind, str] = {}
            for kind_value, upstream_id in entry.upstream.items():
                kind = ProviderKind.parse(kind_value)
                if kind is not None and kind in providers and upstream_id:
                    upstream_ids[kind] = upstream_id

            models[canonical_id] = CanonicalModel(
                id=canonical_id,
                providers=providers,
                description=entry.description,
                meta=entry.meta,
                upstream_ids=upstream_ids,
            )
            for alias in [*entry.aliases, *upstream_ids.values()]:
                if not alias or alias == canonical_id or alias in models:
                    continue
                if alias in alias_to_canonical:
                    continue
                alias_to_canonical[alias] = canonical_id
                pending_aliases.setdefault(canonical_id, []).append(alias)

        ordered = [
            CanonicalModel(
                id=model.id,
                providers=model.providers,
                aliases=tuple(sorted(pending_aliases.get(model.id, []))),
                description=model.description,
                meta=model.meta,
                upstream_ids=model.upstream_ids,
            )
            for model in models.values()
        ]
        return cls(ordered, alias_to_canonical)

    def resolve_alias(self, model_id: str) -> str:
        """Total and idempotent: unknown ids resolve to themselves."""
        return self._aliases.get(model_id, model_id)

    def get(self, model_id: str) -> CanonicalModel | None:
        return self._models.get(self.resolve_alias(model_id))

    def is_known(self, model_id: str) -> bool:
        return self.get(model_id) is not None

    def list_all(self) -> tuple[CanonicalModel, ...]:
        return self._order

    def sorted_ids(self) -> list[str]:
        return sorted(self._models)

    def eligible_providers(self, canonical_id: str) -> tuple[ProviderKind, ...]:
        model = self.get(canonical_id)
        return model.providers if model is not None else ()

    def lookup_keys(self, model_id: str) -> list[str]:
        """Canonical id followed by every alias; used for per-user model rows."""
        canonical_id = self.resolve_alias(model_id)
        model = self._models.get(canonical_id)
        return [canonical_id, *(model.aliases if model else ())]

    def upstream_model(self, canonical_id: str, provider: ProviderKind) -> str:
        model = self.get(canonical_id)
        if model is None:
            return canonical_id
        return model.upstream_ids.get(provider, model.id)

    def parse_model_param(self, value: str) -> tuple[ProviderKind | None, str]:
        """
        Split an optional "provider/model" pin.

        Known ids win over the split, so upstream-style aliases that contain a
        slash ("meta/llama-3.1-70b-instruct") keep working.
        """
        value = value.strip()
        if self.is_known(value) or "/" not in value:
            return None, self.resolve_alias(value)
        prefix, _, rest = value.partition("/")
        provider = ProviderKind.parse(prefix)
        if provider is None or not rest:
            return None, self.resolve_alias(value)
        return provider, self.resolve_alias(rest)

    def __len__(self) -> int:
        return len(self._order)


def _parse_providers(model_id: str, values: Iterable[str]) -> tuple[ProviderKind, ...]:
    providers: list[ProviderKind] = []
    for value in values:
        kind = ProviderKind.parse(value)
        if kind is None:
            logger.warning("catalog: model %s lists unknown provider %r; ignored", model_id, value)
            continue
        if kind not in providers:
            providers.append(kind)
    return tuple(providers)


def load_catalog_entries(path: str | Path | None) -> list[CatalogEntry]:
    """Built-in entries followed by the optional JSON file's entries."""
    entries = [CatalogEntry.model_validate(item) for item in BUILTIN_MODELS]
    if not path:
        return entries

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    items = raw.get("models", []) if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        raise ValueError(f"Catalog file {path} must contain a list of models")
    for item in items:
        try:
            entries.append(CatalogEntry.model_validate(item))
        except ValidationError as exc:
            logger.warning("catalog: invalid entry in %s skipped: %s", path, exc)
    return entries


class CatalogHolder:
    """
    Owns the live catalog snapshot.

    `refresh()` builds a new snapshot and swaps the reference; a failed
    refresh keeps serving the previous one.
    """

    def __init__(self, source_path: str | None = None, catalog: ModelCatalog | None = None) -> None:
        self._source_path = source_path
        self._catalog = catalog if catalog is not None else ModelCatalog.from_entries(
            load_catalog_entries(None)
        )
        self._task: asyncio.Task | None = None

    @property
    def catalog(self) -> ModelCatalog:
        return self._catalog

    def refresh(self) -> ModelCatalog:
        try:
            snapshot = ModelCatalog.from_entries(load_catalog_entries(self._source_path))
        except (OSError, ValueError) as exc:
            logger.error("catalog refresh failed, keeping previous snapshot: %s", exc)
            return self._catalog
        self._catalog = snapshot
        logger.info("catalog refreshed: %d models", len(snapshot))
        return snapshot

    async def _refresh_loop(self, interval_seconds: int) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.refresh()

    def start_background_refresh(self, interval_seconds: int) -> None:
        if interval_seconds <= 0 or self._task is not None:
            return
        self._task = asyncio.create_task(self._refresh_loop(interval_seconds))

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


__all__ = [
    "CanonicalModel",
    "CatalogEntry",
    "CatalogHolder",
    "ModelCatalog",
    "ModelMeta",
    "load_catalog_entries",
]
