# backend/app/utils/quotas/schedule.py

"""
Agregación del plano anual de quotas de un orçamento.

Para cada fracción y cada uno de los 12 meses fiscales se suman las
cuotas de todas las categorías en las que participa. El total anual de
cada fracción es la suma de sus 12 valores mensuales (no se recalcula
por otra vía, así cuadra siempre con las líneas persistidas).
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from backend.app.core.constants import MONTHS_PER_YEAR, UNIT_TYPE_LABELS
from backend.app.db.models import AllocationScope, UnitType
from backend.app.utils.quotas.allocation import compute_category_shares, resolve_participants
from backend.app.utils.quotas.types import (
    BudgetInputs,
    CategoryInfo,
    CategorySummary,
    Schedule,
    ScheduleRow,
    UnitInfo,
)


def build_scope_label(category: CategoryInfo, participants: Sequence[UnitInfo]) -> str:
    """
    Texto legible del ámbito resuelto:
      - "All units (N)"
      - "Types: Residential, Parking"
      - "Units: 1A, 2B"
      - "Custom units (none assigned)"
    """
    scope = category.allocation_scope

    if scope == AllocationScope.unit_types and category.eligible_unit_types:
        # Orden estable: el del enumerado, no el del set
        types = [t for t in UnitType if t in category.eligible_unit_types]
        return "Types: " + ", ".join(UNIT_TYPE_LABELS.get(t.value, t.value) for t in types)

    if scope == AllocationScope.custom:
        if not participants:
            return "Custom units (none assigned)"
        return "Units: " + ", ".join(u.unit_number for u in participants)

    return f"All units ({len(participants)})"


def sort_units(units: Sequence[UnitInfo]) -> List[UnitInfo]:
    """Orden de presentación: identificador visible ascendente."""
    return sorted(units, key=lambda u: (u.unit_number, u.id))


def build_schedule(inputs: BudgetInputs) -> Schedule:
    """
    Calcula el plano (en memoria) de un orçamento:

    - Filas: una por fracción, 12 importes mensuales + total anual.
    - Resumen: una entrada por categoría (incluidas las que no reparten
      nada por no tener participantes o por permilagem degenerada).
    """
    units = sort_units(inputs.units)
    monthly: Dict[int, List[float]] = {u.id: [0.0] * MONTHS_PER_YEAR for u in units}
    summary: List[CategorySummary] = []

    for category in inputs.categories:
        participants = resolve_participants(
            category,
            units,
            inputs.assigned_unit_ids(category.id),
        )
        result = compute_category_shares(
            category,
            inputs.budget.reserve_fund_percentage,
            participants,
            units,
        )

        summary.append(
            CategorySummary(
                category_id=category.id,
                name=category.name,
                total=category.planned_amount,
                participant_count=len(participants),
                scope_label=build_scope_label(category, participants),
                monthly_total=result.monthly_total,
                contributes_to_fcr=category.contributes_to_fcr,
                degenerate=result.degenerate,
            )
        )

        for unit_id, share in result.shares.items():
            amounts = monthly[unit_id]
            for month_index in range(MONTHS_PER_YEAR):
                amounts[month_index] += share

    rows = tuple(
        ScheduleRow(
            unit=u,
            monthly=tuple(monthly[u.id]),
            annual_total=sum(monthly[u.id]),
        )
        for u in units
    )

    return Schedule(budget=inputs.budget, rows=rows, summary=tuple(summary))
