"""Developer-only endpoints, mounted when QUIZCOACH_DEBUG_ENDPOINTS is set."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from .catalogue import CatalogueError, CatalogueLoader, get_catalogue_loader
from .telemetry import emit_event


router = APIRouter(prefix="/api/debug", tags=["debug"])


@router.post("/catalogue/reload", status_code=status.HTTP_200_OK)
def reload_catalogue(loader: CatalogueLoader = Depends(get_catalogue_loader)) -> Dict[str, Any]:
    try:
        catalogue = loader.reload()
    except (CatalogueError, OSError) as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    emit_event("catalogue_reloaded", path=loader.path, objectives=catalogue.objective_count())
    return {"levels": catalogue.levels(), "objectives": catalogue.objective_count()}


@router.get("/catalogue", status_code=status.HTTP_200_OK)
def dump_catalogue(loader: CatalogueLoader = Depends(get_catalogue_loader)) -> Dict[str, Any]:
    try:
        return loader.load().as_dict()
    except (CatalogueError, OSError) as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc


__all__ = ["router"]
