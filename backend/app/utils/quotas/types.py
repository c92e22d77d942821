# backend/app/utils/quotas/types.py

"""
Tipos inmutables de entrada y salida del motor de quotas.

El motor no lee formularios ni modelos SQLAlchemy: recibe estas
estructuras (construidas en storage.py) y devuelve otras nuevas.
No guarda estado entre llamadas.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import FrozenSet, Mapping, Optional, Tuple, Union

from backend.app.db.custom_types import Money, Weight
from backend.app.db.models import AllocationScope, UnitType


# ============================
# Entradas
# ============================

@dataclass(frozen=True)
class UnitInfo:
    id: int
    unit_number: str
    unit_type: UnitType
    weight: Weight


@dataclass(frozen=True)
class BudgetInfo:
    id: int
    year: int
    total_amount: Money = 0.0
    reserve_fund_percentage: float = 10.0
    condominium_id: Optional[int] = None


@dataclass(frozen=True)
class CategoryInfo:
    id: int
    name: str
    planned_amount: Money
    allocation_scope: AllocationScope = AllocationScope.all
    eligible_unit_types: FrozenSet[UnitType] = frozenset()
    contributes_to_fcr: bool = True


@dataclass(frozen=True)
class BudgetInputs:
    """
    Todo lo que el motor necesita para calcular el plano de un orçamento.

    assignments: category_id -> ids de fracción asignados (ámbito custom).
    """
    budget: BudgetInfo
    categories: Tuple[CategoryInfo, ...]
    units: Tuple[UnitInfo, ...]
    assignments: Mapping[int, FrozenSet[int]] = field(default_factory=dict)

    def assigned_unit_ids(self, category_id: int) -> FrozenSet[int]:
        return self.assignments.get(category_id, frozenset())


# ============================
# Resolución del divisor
# ============================

@dataclass(frozen=True)
class Distributed:
    """Hay divisor válido. source: 'participants' o 'global'."""
    divisor: float
    source: str = "participants"


@dataclass(frozen=True)
class Degenerate:
    """Ni las fracciones participantes ni el total tienen permilagem."""
    reason: str = "all candidate weight sums are zero"


DivisorResolution = Union[Distributed, Degenerate]


# ============================
# Resultados
# ============================

@dataclass(frozen=True)
class CategoryShares:
    category: CategoryInfo
    participants: Tuple[UnitInfo, ...]
    monthly_base: Money
    fcr_amount: Money
    monthly_total: Money
    # None cuando no hay participantes (no se llega a resolver el divisor)
    resolution: Optional[DivisorResolution]
    shares: Mapping[int, Money] = field(default_factory=dict)

    @property
    def degenerate(self) -> bool:
        return isinstance(self.resolution, Degenerate)


@dataclass(frozen=True)
class CategorySummary:
    category_id: int
    name: str
    total: Money
    participant_count: int
    scope_label: str
    monthly_total: Money
    contributes_to_fcr: bool
    degenerate: bool = False


@dataclass(frozen=True)
class ScheduleRow:
    unit: UnitInfo
    monthly: Tuple[Money, ...]
    annual_total: Money


@dataclass(frozen=True)
class Schedule:
    budget: BudgetInfo
    rows: Tuple[ScheduleRow, ...]
    summary: Tuple[CategorySummary, ...]

    def row_for(self, unit_id: int) -> Optional[ScheduleRow]:
        for row in self.rows:
            if row.unit.id == unit_id:
                return row
        return None

    @property
    def grand_total(self) -> Money:
        return sum(row.annual_total for row in self.rows)


@dataclass(frozen=True)
class StandaloneShare:
    unit: UnitInfo
    monthly_share: Money


@dataclass(frozen=True)
class StandalonePlan:
    title: str
    total_amount: Money
    duration_months: int
    monthly_total: Money
    start: date
    shares: Tuple[StandaloneShare, ...]
    notes: Optional[str] = None


@dataclass(frozen=True)
class ObligationDraft:
    """
    Pago a crear (todavía sin persistir). month_index es el índice dentro
    del plano: 0-11 en orçamentos, 0-(duración-1) en quotas avulsas.
    """
    unit_id: int
    month_index: int
    amount: Money
    issue_date: date
    due_date: date
    period: str
    notes: Optional[str] = None
