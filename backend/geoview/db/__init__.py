"""Data models and the map surface store.

models holds the immutable records passed between ingestion stages
(RasterSource, RasterMetadata, CrsDefinition). database holds the
per-process store that maps surface ids to their overlay managers and the
cached factory used as a FastAPI dependency.

Example:
    >>> from geoview.db import database
    >>> repo = database.get_surface_repository()
    >>> manager = repo.get_or_create("main")
"""
