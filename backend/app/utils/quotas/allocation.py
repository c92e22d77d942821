# backend/app/utils/quotas/allocation.py

"""
Reparto de una categoría del orçamento entre fracciones.

Dos piezas:

- resolve_participants(): qué fracciones participan según el ámbito
  (all / unit_types / custom).
- compute_category_shares(): cuota mensual de cada participante,
  con el recargo del fundo comum de reserva (FCR) si la categoría
  contribuye.

Reglas de ámbito (asimetría intencionada):
- unit_types sin tipos -> TODAS las fracciones.
- custom sin fracciones asignadas -> NINGUNA (la categoría no se
  reparte en este ciclo; aparece en el resumen con 0 participantes).
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, Sequence, Tuple

from backend.app.core.constants import MONTHS_PER_YEAR
from backend.app.db.models import AllocationScope
from backend.app.utils.quotas.types import (
    CategoryInfo,
    CategoryShares,
    Degenerate,
    Distributed,
    DivisorResolution,
    UnitInfo,
)

logger = logging.getLogger(__name__)


# ============================
# Participantes
# ============================

def resolve_participants(
    category: CategoryInfo,
    units: Sequence[UnitInfo],
    assigned_unit_ids: FrozenSet[int] = frozenset(),
) -> Tuple[UnitInfo, ...]:
    """
    Devuelve las fracciones que participan en la categoría, en el mismo
    orden que `units`.

    - all        -> todas.
    - unit_types -> las de tipo elegible; si no hay tipos, todas.
    - custom     -> exactamente las asignadas; si no hay, ninguna.
    """
    scope = category.allocation_scope

    if scope == AllocationScope.unit_types:
        if not category.eligible_unit_types:
            return tuple(units)
        return tuple(u for u in units if u.unit_type in category.eligible_unit_types)

    if scope == AllocationScope.custom:
        if not assigned_unit_ids:
            return ()
        return tuple(u for u in units if u.id in assigned_unit_ids)

    return tuple(units)


# ============================
# Importes mensuales
# ============================

def monthly_amounts(
    planned_amount: float,
    contributes_to_fcr: bool,
    reserve_fund_percentage: float,
) -> Tuple[float, float, float]:
    """
    (base mensual, recargo FCR, total mensual) de una categoría.

    El importe anual se reparte por igual en 12 meses; no hay
    estacionalidad.
    """
    monthly_base = (planned_amount or 0.0) / MONTHS_PER_YEAR
    fcr_amount = monthly_base * (reserve_fund_percentage / 100) if contributes_to_fcr else 0.0
    return monthly_base, fcr_amount, monthly_base + fcr_amount


def _weight_sum(units: Iterable[UnitInfo]) -> float:
    return sum(u.weight for u in units)


def resolve_divisor(
    participants: Sequence[UnitInfo],
    all_units: Sequence[UnitInfo],
) -> DivisorResolution:
    """
    Divisor del reparto, en dos pasos:

    1) Suma de permilagens de los participantes, si es > 0.
    2) Si no, suma de permilagens de TODAS las fracciones.
    3) Si también es 0 -> Degenerate (no se lanza; el llamador decide).
    """
    participant_sum = _weight_sum(participants)
    if participant_sum > 0:
        return Distributed(divisor=participant_sum, source="participants")

    global_sum = _weight_sum(all_units)
    if global_sum > 0:
        return Distributed(divisor=global_sum, source="global")

    return Degenerate()


# ============================
# Reparto de una categoría
# ============================

def compute_category_shares(
    category: CategoryInfo,
    reserve_fund_percentage: float,
    participants: Sequence[UnitInfo],
    all_units: Sequence[UnitInfo],
) -> CategoryShares:
    """
    Calcula la cuota mensual de cada participante:

        share = (permilagem / divisor) * total_mensual

    La cuota es la misma los 12 meses. Si no hay participantes o el
    divisor es degenerado, la categoría aporta 0 a todas las fracciones.
    """
    monthly_base, fcr_amount, monthly_total = monthly_amounts(
        category.planned_amount,
        category.contributes_to_fcr,
        reserve_fund_percentage,
    )

    if not participants:
        return CategoryShares(
            category=category,
            participants=(),
            monthly_base=monthly_base,
            fcr_amount=fcr_amount,
            monthly_total=monthly_total,
            resolution=None,
        )

    resolution = resolve_divisor(participants, all_units)
    shares: Dict[int, float] = {}

    if isinstance(resolution, Degenerate):
        logger.warning(
            "[quotas] categoria sin permilagem category_id=%s participants=%s: aporta 0",
            category.id,
            len(participants),
        )
    else:
        for unit in participants:
            shares[unit.id] = (unit.weight / resolution.divisor) * monthly_total

    return CategoryShares(
        category=category,
        participants=tuple(participants),
        monthly_base=monthly_base,
        fcr_amount=fcr_amount,
        monthly_total=monthly_total,
        resolution=resolution,
        shares=shares,
    )
