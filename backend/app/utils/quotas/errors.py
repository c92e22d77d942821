# backend/app/utils/quotas/errors.py

"""
Jerarquía de errores del motor de quotas.

Todas las excepciones llevan contexto (budget_id, category_id, unit_id,
condominium_id) para poder diagnosticar desde el router o los logs.
Los routers traducen cada tipo a su código HTTP (ver quotas_router).
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class QuotaError(Exception):
    """Base de todos los errores del motor de quotas."""

    def __init__(
        self,
        message: str,
        *,
        budget_id: Optional[int] = None,
        category_id: Optional[int] = None,
        unit_id: Optional[int] = None,
        condominium_id: Optional[int] = None,
        schedule_id: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.budget_id = budget_id
        self.category_id = category_id
        self.unit_id = unit_id
        self.condominium_id = condominium_id
        self.schedule_id = schedule_id

    @property
    def context(self) -> Dict[str, Any]:
        ctx = {
            "budget_id": self.budget_id,
            "category_id": self.category_id,
            "unit_id": self.unit_id,
            "condominium_id": self.condominium_id,
            "schedule_id": self.schedule_id,
        }
        return {k: v for k, v in ctx.items() if v is not None}

    def to_detail(self) -> Dict[str, Any]:
        return {"message": self.message, **self.context}


class QuotaValidationError(QuotaError):
    """Entrada mal formada o fuera de rango. No se persiste nada."""


class DegenerateWeightError(QuotaError):
    """Todos los divisores candidatos son cero (suma de permilagens = 0)."""


class PersistenceError(QuotaError):
    """Fallo del almacenamiento a mitad de escritura (se hace rollback)."""


class ScheduleAlreadyFinalizedError(QuotaError):
    """El orçamento ya tiene un plano finalizado; no se duplican pagos."""


class NotFoundError(QuotaError):
    """Entidad de entrada inexistente."""


class BudgetNotFoundError(NotFoundError):
    pass


class CondominiumNotFoundError(NotFoundError):
    pass


class CategoryNotFoundError(NotFoundError):
    pass


class ScheduleNotFoundError(NotFoundError):
    pass
