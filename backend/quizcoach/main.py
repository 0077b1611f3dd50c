import logging
from typing import Any, Dict

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .catalogue import CatalogueError, CatalogueLoader, get_catalogue_loader
from .config import Settings, get_settings
from .db.session import get_engine
from .debug_routes import router as debug_router
from .logging_config import configure_logging
from .results_routes import router as results_router
from .session_routes import router as session_router


configure_logging()
logger = logging.getLogger(__name__)
app = FastAPI(title="Quiz Coach Backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(session_router)
app.include_router(results_router)

settings_snapshot = get_settings()
logger.info("Backend starting with objectives at %s", settings_snapshot.objectives_path)
logger.info("Result persistence mode: %s", settings_snapshot.persistence_mode)
if settings_snapshot.debug_endpoints:
    app.include_router(debug_router)
    logger.info("Debug endpoints enabled")


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, str]:
    return {"status": "ok", "persistence_mode": settings.persistence_mode}


@app.get("/healthz/catalogue")
def catalogue_health(loader: CatalogueLoader = Depends(get_catalogue_loader)) -> Dict[str, Any]:
    try:
        catalogue = loader.load()
    except (CatalogueError, OSError) as exc:
        logger.warning("Catalogue health check failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return {
        "status": "ok",
        "path": str(loader.path),
        "levels": catalogue.levels(),
        "objectives": catalogue.objective_count(),
    }


@app.get("/healthz/database")
def database_health(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.exec_driver_sql("SELECT 1")
    except Exception as exc:  # noqa: BLE001
        logger.warning("Database health check failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return {
        "status": "ok",
        "pool": engine.pool.status(),
        "persistence_mode": settings.persistence_mode,
    }
