from .catalog import (
    CanonicalModel,
    CatalogEntry,
    CatalogHolder,
    ModelCatalog,
    ModelMeta,
    load_catalog_entries,
)

__all__ = [
    "CanonicalModel",
    "CatalogEntry",
    "CatalogHolder",
    "ModelCatalog",
    "ModelMeta",
    "load_catalog_entries",
]
