# backend/app/utils/quotas/obligations.py

"""
Generación de pagos (obligaciones) a partir de un plano.

- Orçamento: año fiscal de febrero a enero.
    índice 0  -> febrero del año del orçamento
    índice 10 -> diciembre del año del orçamento
    índice 11 -> enero del año siguiente
- Quota avulsa: meses de calendario consecutivos desde el mes de inicio.

Fecha de emisión: día 1 del mes; vencimiento: día 15; periodo 'YYYY-MM'.
Solo se genera pago para importes estrictamente positivos.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional, Tuple

from backend.app.core.config import settings
from backend.app.core.constants import FISCAL_FIRST_MONTH, MONTHS_PER_YEAR
from backend.app.utils.quotas.errors import QuotaValidationError
from backend.app.utils.quotas.types import ObligationDraft, Schedule, StandalonePlan


# ============================
# Fechas
# ============================

def add_months(d: date, months: int) -> date:
    """
    Suma `months` meses a una fecha `d` de forma sencilla,
    limitando el día a 28 para evitar problemas con meses más cortos.
    """
    y = d.year + (d.month - 1 + months) // 12
    m = (d.month - 1 + months) % 12 + 1
    dd = min(d.day, 28)
    return date(y, m, dd)


def fiscal_month(budget_year: int, month_index: int) -> Tuple[int, int]:
    """
    Traduce un índice del plano (0-11) al (año, mes) de calendario.
    """
    if not 0 <= month_index < MONTHS_PER_YEAR:
        raise QuotaValidationError(f"month_index fuera de rango: {month_index}")
    shifted = add_months(date(budget_year, FISCAL_FIRST_MONTH, 1), month_index)
    return shifted.year, shifted.month


def period_label(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def obligation_dates(
    year: int,
    month: int,
    *,
    issue_day: Optional[int] = None,
    due_day: Optional[int] = None,
) -> Tuple[date, date, str]:
    """
    (fecha de emisión, fecha de vencimiento, periodo) de un mes.
    """
    issue_day = issue_day or settings.OBLIGATION_ISSUE_DAY
    due_day = due_day or settings.OBLIGATION_DUE_DAY
    return date(year, month, issue_day), date(year, month, due_day), period_label(year, month)


# ============================
# Orçamento
# ============================

def build_budget_obligations(
    schedule: Schedule,
    *,
    issue_day: Optional[int] = None,
    due_day: Optional[int] = None,
) -> List[ObligationDraft]:
    """
    Una obligación por (fracción, mes) con importe > 0, en el orden de las
    filas del plano y del mes fiscal.
    """
    year = schedule.budget.year
    notes = f"Quota {year}"
    drafts: List[ObligationDraft] = []

    for row in schedule.rows:
        for month_index, amount in enumerate(row.monthly):
            if amount <= 0:
                continue
            cal_year, cal_month = fiscal_month(year, month_index)
            issue, due, period = obligation_dates(
                cal_year, cal_month, issue_day=issue_day, due_day=due_day
            )
            drafts.append(
                ObligationDraft(
                    unit_id=row.unit.id,
                    month_index=month_index,
                    amount=amount,
                    issue_date=issue,
                    due_date=due,
                    period=period,
                    notes=notes,
                )
            )
    return drafts


# ============================
# Quota avulsa
# ============================

def build_standalone_obligations(
    plan: StandalonePlan,
    *,
    issue_day: Optional[int] = None,
    due_day: Optional[int] = None,
) -> List[ObligationDraft]:
    """
    duration_months obligaciones por fracción (si su cuota es > 0), en
    meses de calendario consecutivos desde plan.start.
    """
    notes = f"Standalone quota: {plan.title}"
    drafts: List[ObligationDraft] = []

    for share in plan.shares:
        if share.monthly_share <= 0:
            continue
        for month_index in range(plan.duration_months):
            target = add_months(plan.start, month_index)
            issue, due, period = obligation_dates(
                target.year, target.month, issue_day=issue_day, due_day=due_day
            )
            drafts.append(
                ObligationDraft(
                    unit_id=share.unit.id,
                    month_index=month_index,
                    amount=share.monthly_share,
                    issue_date=issue,
                    due_date=due,
                    period=period,
                    notes=notes,
                )
            )
    return drafts
