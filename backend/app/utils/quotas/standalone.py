# backend/app/utils/quotas/standalone.py

"""
Quotas avulsas: un importe único repartido a partes iguales en N meses
de calendario consecutivos y, dentro de cada mes, por permilagem.

A diferencia del reparto por categorías, aquí NO hay divisor de
respaldo: si la suma de permilagens es 0 el plan entero se aborta.
"""

from __future__ import annotations

import math
from datetime import date
from typing import Optional, Sequence

from backend.app.core.config import settings
from backend.app.utils.quotas.errors import DegenerateWeightError, QuotaValidationError
from backend.app.utils.quotas.schedule import sort_units
from backend.app.utils.quotas.types import StandalonePlan, StandaloneShare, UnitInfo


def validate_standalone_request(
    title: Optional[str],
    total_amount: float,
    duration_months: int,
    *,
    condominium_id: Optional[int] = None,
) -> str:
    """
    Valida la petición antes de calcular nada. Devuelve el título limpio.
    """
    clean_title = (title or "").strip()
    if not clean_title:
        raise QuotaValidationError("El título es obligatorio.", condominium_id=condominium_id)

    if (
        isinstance(total_amount, bool)
        or not isinstance(total_amount, (int, float))
        or not math.isfinite(total_amount)
        or total_amount <= 0
    ):
        raise QuotaValidationError(
            "El importe total debe ser un número finito mayor que 0.", condominium_id=condominium_id
        )

    max_months = settings.STANDALONE_MAX_MONTHS
    if (
        isinstance(duration_months, bool)
        or not isinstance(duration_months, int)
        or not 1 <= duration_months <= max_months
    ):
        raise QuotaValidationError(
            f"La duración debe estar entre 1 y {max_months} meses.",
            condominium_id=condominium_id,
        )

    return clean_title


def build_standalone_plan(
    title: Optional[str],
    total_amount: float,
    duration_months: int,
    units: Sequence[UnitInfo],
    *,
    start: Optional[date] = None,
    notes: Optional[str] = None,
    condominium_id: Optional[int] = None,
) -> StandalonePlan:
    """
    Calcula la cuota mensual de cada fracción:

        share = (permilagem / suma_permilagens) * (total / duración)

    start: cualquier día del mes de inicio (por defecto, el mes actual).
    """
    clean_title = validate_standalone_request(
        title, total_amount, duration_months, condominium_id=condominium_id
    )

    total_weight = sum(u.weight for u in units)
    if total_weight <= 0:
        raise DegenerateWeightError(
            "La suma de permilagens es cero; no se puede repartir la quota.",
            condominium_id=condominium_id,
        )

    monthly_total = total_amount / duration_months
    shares = tuple(
        StandaloneShare(unit=u, monthly_share=(u.weight / total_weight) * monthly_total)
        for u in sort_units(units)
    )

    start_month = (start or date.today()).replace(day=1)

    return StandalonePlan(
        title=clean_title,
        total_amount=total_amount,
        duration_months=duration_months,
        monthly_total=monthly_total,
        start=start_month,
        shares=shares,
        notes=(notes or "").strip() or None,
    )
