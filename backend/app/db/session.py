# backend/app/db/session.py
"""
Gestión de la conexión a la base de datos (SQLAlchemy).

Puntos clave:
- Construimos engine desde settings.resolve_database_url()
- En Postgres, connect_args fuerza parámetros críticos del driver psycopg:
  - prepare_threshold=0 (INT): evita problemas con prepared statements y poolers
  - connect_timeout, sslmode
- En SQLite (desarrollo / tests) permitimos usar la conexión desde
  varios hilos (FastAPI ejecuta los endpoints sync en un threadpool).
- NullPool opcional: recomendado cuando pasas por pooler (PgBouncer).
"""

from __future__ import annotations

from urllib.parse import urlparse

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from backend.app.core.config import settings


def _should_use_nullpool(db_url: str) -> bool:
    """
    Decide si usar NullPool.

    Cuándo conviene:
    - Si DB_USE_NULLPOOL está activado.
    - Si detectamos el puerto típico de poolers (6543).
    """
    if settings.DB_USE_NULLPOOL:
        return True

    p = urlparse(db_url)
    try:
        port = p.port or 0
    except ValueError:
        return False
    return port == 6543


def build_engine(db_url: str):
    """
    Crea el engine con los ajustes adecuados al dialecto.
    """
    if db_url.startswith("sqlite"):
        return create_engine(
            db_url,
            future=True,
            connect_args={"check_same_thread": False},
        )

    engine_kwargs = dict(
        pool_pre_ping=True,
        future=True,
        connect_args={
            "connect_timeout": 10,
            "sslmode": "require",
            # psycopg3 espera int, no string
            "prepare_threshold": 0,
        },
    )
    if _should_use_nullpool(db_url):
        engine_kwargs["poolclass"] = NullPool

    return create_engine(db_url, **engine_kwargs)


DATABASE_URL = settings.resolve_database_url()

engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


def get_db():
    """
    Dependencia FastAPI:
    - abre sesión
    - cierra sesión al finalizar
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
