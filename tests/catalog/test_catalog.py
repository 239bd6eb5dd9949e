import json

from gateway.catalog import CatalogHolder, ModelCatalog, load_catalog_entries
from gateway.provider.kinds import ProviderKind


def _catalog() -> ModelCatalog:
    return ModelCatalog.from_entries(
        [
            {
                "id": "alpha",
                "providers": ["iflow", "qwen-code"],
                "aliases": ["alpha-latest"],
                "upstream": {"qwen_code": "vendor/alpha"},
                "description": "first",
            },
            {"id": "beta", "providers": ["copilot"], "aliases": ["alpha-latest", "alpha"]},
            {"id": "alpha", "providers": ["kiro"], "description": "second"},
            {"id": "alpha-latest", "providers": ["kiro"]},
            {"id": "gamma", "providers": ["not-a-provider"]},
        ]
    )


def test_alias_resolution_is_idempotent():
    catalog = _catalog()
    for model_id in ["alpha", "alpha-latest", "vendor/alpha", "beta", "unknown"]:
        once = catalog.resolve_alias(model_id)
        assert catalog.resolve_alias(once) == once
    assert catalog.resolve_alias("alpha-latest") == "alpha"
    assert catalog.resolve_alias("vendor/alpha") == "alpha"
    assert catalog.resolve_alias("unknown") == "unknown"


def test_dedup_keeps_first_seen_entry():
    catalog = _catalog()
    alpha = catalog.get("alpha")
    assert alpha is not None
    assert alpha.description == "first"
    assert alpha.providers == (ProviderKind.IFLOW, ProviderKind.QWEN_CODE)
    # raw id that already resolves to a canonical model is dropped
    assert [m.id for m in catalog.list_all()] == ["alpha", "beta"]


def test_aliases_are_first_wins_and_never_shadow_canonical_ids():
    catalog = _catalog()
    assert catalog.get("beta").aliases == ()
    assert catalog.lookup_keys("alpha-latest") == ["alpha", "alpha-latest", "vendor/alpha"]


def test_unknown_providers_drop_the_entry():
    catalog = _catalog()
    assert not catalog.is_known("gamma")
    assert len(catalog) == 2


def test_upstream_model_defaults_to_canonical():
    catalog = _catalog()
    assert catalog.upstream_model("alpha", ProviderKind.QWEN_CODE) == "vendor/alpha"
    assert catalog.upstream_model("alpha", ProviderKind.IFLOW) == "alpha"


def test_parse_model_param_pins_provider_only_for_known_kinds():
    catalog = _catalog()
    assert catalog.parse_model_param("copilot/beta") == (ProviderKind.COPILOT, "beta")
    assert catalog.parse_model_param("qwen-code/alpha-latest") == (ProviderKind.QWEN_CODE, "alpha")
    # upstream id with a slash is a known alias, not a pin
    assert catalog.parse_model_param("vendor/alpha") == (None, "alpha")
    assert catalog.parse_model_param("nobody/beta") == (None, "nobody/beta")
    assert catalog.parse_model_param(" beta ") == (None, "beta")


def test_builtin_registry_is_consistent():
    catalog = ModelCatalog.from_entries(load_catalog_entries(None))
    assert catalog.is_known("glm-4.7")
    assert catalog.eligible_providers("glm-4.7")[0] is ProviderKind.IFLOW
    assert catalog.resolve_alias("gpt-oss-120b") == "gpt-oss-120b-medium"
    assert catalog.get("meta/llama-3.1-70b-instruct").id == "nim-llama-3.1-70b-instruct"
    assert catalog.sorted_ids() == sorted(catalog.sorted_ids())
    for model in catalog.list_all():
        assert model.providers


def test_holder_refresh_appends_file_entries_and_keeps_snapshot_on_error(tmp_path):
    extra = tmp_path / "models.json"
    extra.write_text(
        json.dumps({"models": [{"id": "custom-model", "providers": ["openrouter"]}]}),
        encoding="utf-8",
    )
    holder = CatalogHolder(str(extra))
    before = holder.catalog
    refreshed = holder.refresh()
    assert refreshed is holder.catalog
    assert refreshed is not before
    assert refreshed.is_known("custom-model")
    assert refreshed.list_all()[-1].id == "custom-model"

    extra.write_text("{not json", encoding="utf-8")
    assert holder.refresh() is refreshed
    assert holder.catalog.is_known("custom-model")
