# backend/app/core/config.py
"""
Configuración central del backend de quotas del condominio.

Objetivos del diseño:
1) Evitar credenciales "hardcodeadas" en código.
2) Tener UNA fuente de verdad para la BD en runtime: DATABASE_URL.
   - Sin DATABASE_URL se usa un SQLite local (útil en desarrollo).
3) Normalizar la URL de Postgres:
   - driver psycopg (no psycopg2)
   - sslmode=require
4) Centralizar los parámetros del motor de quotas (FCR por defecto,
   días de emisión/vencimiento, duración máxima de quotas avulsas).

NOTA práctica:
- No pongas valores entre comillas en el entorno. Si pones
  DATABASE_URL="postgresql+..." las comillas forman parte del valor
  (igualmente las quitamos en _strip_wrapping_quotes).
"""

from __future__ import annotations

import re
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SQLITE_URL = "sqlite:///./condominio.db"


def _strip_wrapping_quotes(value: str) -> str:
    """
    Elimina comillas envolventes si el usuario las puso en el .env.
    Ej: '"abc"' -> 'abc'
    """
    v = (value or "").strip()
    if len(v) >= 2 and ((v[0] == v[-1] == '"') or (v[0] == v[-1] == "'")):
        return v[1:-1].strip()
    return v


def _is_postgres(url: str) -> bool:
    return url.startswith("postgresql") or url.startswith("postgres://")


def _ensure_psycopg_driver(url: str) -> str:
    """
    Fuerza a usar psycopg3 en SQLAlchemy:
    - postgres://...                  -> postgresql+psycopg://...
    - postgresql://...                -> postgresql+psycopg://...
    - postgresql+psycopg2://...       -> postgresql+psycopg://...
    """
    u = url.strip()
    u = re.sub(r"^postgres://", "postgresql://", u)
    u = re.sub(r"^postgresql\+psycopg2://", "postgresql+psycopg://", u)
    u = re.sub(r"^postgresql://", "postgresql+psycopg://", u)
    return u


def _append_query_param(url: str, key: str, value: str) -> str:
    """
    Añade un query param si no existe ya.
    """
    if re.search(rf"(^|[?&]){re.escape(key)}=", url):
        return url
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{key}={value}"


def _csv_to_list(value: str) -> List[str]:
    """
    Convierte 'a,b,c' -> ['a','b','c'] ignorando vacíos.
    """
    v = (value or "").strip()
    if not v:
        return []
    return [x.strip() for x in v.split(",") if x.strip()]


class Settings(BaseSettings):
    """
    Ajustes de la aplicación.

    Nota:
    - BaseSettings lee variables de entorno y valida tipos.
    - Todo llega como string; Pydantic convierte a int/bool/float.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ---- entorno general
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # ---- CORS: CSV en env "http://a,http://b" (vacío = '*')
    CORS_ORIGINS: str = ""

    # ---- base de datos
    DATABASE_URL: Optional[str] = None
    DB_USE_NULLPOOL: bool = False
    BOOTSTRAP_CREATE_ALL: bool = False

    # ---- motor de quotas
    DEFAULT_RESERVE_FUND_PCT: float = 10.0
    OBLIGATION_ISSUE_DAY: int = 1
    OBLIGATION_DUE_DAY: int = 15
    STANDALONE_MAX_MONTHS: int = 120

    @property
    def cors_origins_list(self) -> List[str]:
        return _csv_to_list(self.CORS_ORIGINS)

    def resolve_database_url(self) -> str:
        """
        Decide qué URL de BD usar.

        1) DATABASE_URL si existe (normalizada si es Postgres).
        2) Si no, SQLite local en el directorio de trabajo.
        """
        chosen = _strip_wrapping_quotes(self.DATABASE_URL or "")
        if not chosen:
            return DEFAULT_SQLITE_URL

        if _is_postgres(chosen):
            chosen = _ensure_psycopg_driver(chosen)
            chosen = _append_query_param(chosen, "sslmode", "require")

        return chosen


# Instancia global
settings = Settings()
