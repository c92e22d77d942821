# tests/conftest.py

"""
Fixtures comunes:
- BD SQLite en memoria (una conexión compartida con StaticPool).
- Sesión por test, con todas las tablas recreadas.
- Condominio sembrado (dos fracciones y un orçamento 2025).
- TestClient con get_db apuntando a la sesión de test.
"""

from __future__ import annotations

import os

# Antes de importar settings / engine: nada de ficheros sqlite en el CWD
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.db import models
from backend.app.db.base import Base
from backend.app.db.models import UnitType
from backend.app.db.session import get_db


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db):
    from backend.app.main import app

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ============================
# Sembrado en BD
# ============================

@pytest.fixture()
def seed(db):
    """
    Condominio con dos fracciones (600 / 400) y un orçamento 2025 con
    reserva del 10 %. Devuelve un dict con las filas creadas.
    """
    condo = models.Condominium(name="Edificio Aurora")
    db.add(condo)
    db.flush()

    unit_a = models.Unit(
        condominium_id=condo.id, unit_number="A", unit_type=UnitType.residential, weight=600
    )
    unit_b = models.Unit(
        condominium_id=condo.id, unit_number="B", unit_type=UnitType.commercial, weight=400
    )
    db.add_all([unit_a, unit_b])
    db.flush()

    budget = models.Budget(
        condominium_id=condo.id, year=2025, total_amount=1200, reserve_fund_percentage=10
    )
    db.add(budget)
    db.commit()

    return {"condominium": condo, "units": [unit_a, unit_b], "budget": budget}
