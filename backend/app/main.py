# backend/app/main.py

"""
Punto de entrada principal del backend de quotas de condominio.

Aquí definimos:
- La instancia de FastAPI.
- Logging y CORS (desde settings).
- Endpoints base: /, /health, /ready.
- Router de quotas (api/v1).

IMPORTANTE:
- Cargamos backend/.env antes de inicializar settings / engine.
"""

from __future__ import annotations

import logging
from pathlib import Path

# ---------------------------------------------------------------------------
# 0) Carga de variables de entorno (backend/.env) ANTES de importar engine
# ---------------------------------------------------------------------------
from dotenv import load_dotenv

# Este fichero está en: backend/app/main.py
BACKEND_ENV = Path(__file__).resolve().parents[1] / ".env"
if BACKEND_ENV.is_file():
    load_dotenv(BACKEND_ENV)
else:
    # fallback: .env del CWD si existe
    load_dotenv()

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute
from sqlalchemy import text as sa_text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.db import models  # noqa: F401  (registra tablas en Base.metadata)
from backend.app.db.base import Base
from backend.app.db.session import engine, get_db

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 1) Generador de operation_id únicos
# ---------------------------------------------------------------------------
def custom_generate_unique_id(route: APIRoute) -> str:
    """
    operation_id estable para OpenAPI.
    Patrón: <tag>_<route.name>
    """
    tag_prefix = route.tags[0] if route.tags else "default"
    return f"{tag_prefix}_{route.name}"


# ---------------------------------------------------------------------------
# 2) Crear la app FastAPI
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Condominio Quotas API",
    version="0.1.0",
    description="Reparto de orçamentos por permilagem y generación de planos de quotas.",
    generate_unique_id_function=custom_generate_unique_id,
)


# ---------------------------------------------------------------------------
# 3) CORS
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# 4) Evento startup
# ---------------------------------------------------------------------------
@app.on_event("startup")
def on_startup() -> None:
    """
    - Crea tablas si BOOTSTRAP_CREATE_ALL (entornos locales / sqlite).
    - Comprueba conectividad con la BD. No bloquea el arranque.
    """
    logger.info("[startup] env=%s db=%s", settings.ENV, engine.url.render_as_string(hide_password=True))

    if settings.BOOTSTRAP_CREATE_ALL:
        Base.metadata.create_all(bind=engine)
        logger.info("[startup] create_all OK")

    try:
        with engine.connect() as conn:
            conn.execute(sa_text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("[startup] Error al comprobar la BD: %s", e)


# ---------------------------------------------------------------------------
# 5) Endpoints básicos
# ---------------------------------------------------------------------------
@app.get("/", tags=["core"])
def root() -> dict:
    """Endpoint raíz de la API."""
    return {"message": "Condominio quotas backend is running"}


@app.get("/health", tags=["core"])
def health_simple() -> dict:
    """Servidor vivo (sin tocar BD)."""
    return {"status": "ok"}


@app.get("/ready", tags=["core"])
def ready(db: Session = Depends(get_db)) -> dict:
    """
    Readiness check:
    - servidor vivo + BD accesible
    """
    try:
        db.execute(sa_text("SELECT 1"))
        return {"status": "ok", "db": "reachable"}
    except SQLAlchemyError as e:
        return {"status": "error", "db": "unreachable", "detail": str(e)}


# ---------------------------------------------------------------------------
# 6) Routers de negocio (v1)
# ---------------------------------------------------------------------------
from backend.app.api.v1 import quotas_router

API_V1 = "/api/v1"

app.include_router(quotas_router.router, prefix=API_V1)
