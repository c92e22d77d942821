# backend/app/api/v1/quotas_router.py

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from backend.app.core.constants import FISCAL_MONTH_LABELS
from backend.app.db import models
from backend.app.db.session import get_db
from backend.app.schemas.quotas import (
    CategoryAllocationIn,
    CategoryAllocationOut,
    CategorySummaryOut,
    ClearQuotasOut,
    FinalizeIn,
    FinalizeOut,
    QuotaScheduleItemOut,
    QuotaScheduleOut,
    ScheduleOut,
    ScheduleRowOut,
    StandaloneQuotaIn,
)
from backend.app.utils.quotas.errors import (
    DegenerateWeightError,
    NotFoundError,
    PersistenceError,
    QuotaError,
    QuotaValidationError,
    ScheduleAlreadyFinalizedError,
)
from backend.app.utils.quotas.export import export_filename, export_schedule_csv
from backend.app.utils.quotas.finalize import (
    create_standalone_quota,
    finalize_budget_schedule,
    preview_budget_schedule,
)
from backend.app.utils.quotas.storage import (
    clear_generated_quotas,
    list_schedule_items,
    list_schedules,
    set_category_allocation,
)
from backend.app.utils.quotas.types import Schedule

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotas", tags=["quotas"])


# =======================================================
# Helpers
# =======================================================

def _http_error(e: QuotaError) -> HTTPException:
    """
    Traduce errores del motor a HTTP:
      - NotFound -> 404
      - ya finalizado -> 409
      - validación / permilagens a cero -> 422
      - persistencia -> 500
    """
    if isinstance(e, NotFoundError):
        code = 404
    elif isinstance(e, ScheduleAlreadyFinalizedError):
        code = 409
    elif isinstance(e, (QuotaValidationError, DegenerateWeightError)):
        code = 422
    elif isinstance(e, PersistenceError):
        code = 500
    else:
        code = 400
    return HTTPException(status_code=code, detail=e.to_detail())


def _schedule_out(schedule: Schedule) -> ScheduleOut:
    return ScheduleOut(
        budget_id=schedule.budget.id,
        year=schedule.budget.year,
        reserve_fund_percentage=schedule.budget.reserve_fund_percentage,
        month_labels=list(FISCAL_MONTH_LABELS),
        rows=[ScheduleRowOut.model_validate(r) for r in schedule.rows],
        summary=[CategorySummaryOut.model_validate(s) for s in schedule.summary],
        grand_total=schedule.grand_total,
    )


def _allocation_out(category: models.BudgetCategory) -> CategoryAllocationOut:
    return CategoryAllocationOut(
        id=category.id,
        name=category.name,
        allocation_scope=category.allocation_scope,
        eligible_unit_types=category.eligible_unit_types,
        unit_ids=sorted(a.unit_id for a in category.unit_assignments),
    )


# =======================================================
# Plano anual de un orçamento
# =======================================================

@router.get("/budgets/{budget_id}/schedule", response_model=ScheduleOut)
def ver_plano(budget_id: int, db: Session = Depends(get_db)):
    """
    Plano anual (12 meses fiscales) calculado al vuelo. No escribe nada.
    """
    try:
        schedule = preview_budget_schedule(db, budget_id)
    except QuotaError as e:
        raise _http_error(e)
    except Exception:
        logger.exception("[quotas] preview FAILED budget_id=%s", budget_id)
        raise HTTPException(status_code=500, detail="Error interno calculando el plano")

    logger.info(
        "[quotas] preview budget_id=%s units=%s categories=%s",
        budget_id,
        len(schedule.rows),
        len(schedule.summary),
    )
    return _schedule_out(schedule)


@router.get("/budgets/{budget_id}/export")
def exportar_plano(budget_id: int, db: Session = Depends(get_db)):
    """
    Descarga del plano como CSV (';' y coma decimal).
    """
    try:
        schedule = preview_budget_schedule(db, budget_id)
    except QuotaError as e:
        raise _http_error(e)
    except Exception:
        logger.exception("[quotas] export FAILED budget_id=%s", budget_id)
        raise HTTPException(status_code=500, detail="Error interno exportando el plano")

    filename = export_filename(schedule.budget.year)
    logger.info("[quotas] export budget_id=%s rows=%s", budget_id, len(schedule.rows))
    return Response(
        content=export_schedule_csv(schedule),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post(
    "/budgets/{budget_id}/finalize",
    response_model=FinalizeOut,
    status_code=status.HTTP_201_CREATED,
)
def finalizar_plano(
    budget_id: int,
    payload: Optional[FinalizeIn] = None,
    db: Session = Depends(get_db),
):
    """
    Persiste el plano (snapshot + líneas) y crea un pago pendiente por
    cada importe mensual > 0. Todo o nada.
    """
    try:
        result = finalize_budget_schedule(
            db, budget_id, notes=payload.notes if payload else None
        )
    except QuotaError as e:
        logger.warning("[quotas] finalize rejected budget_id=%s error=%s", budget_id, e.message)
        raise _http_error(e)
    except Exception:
        logger.exception("[quotas] finalize FAILED budget_id=%s", budget_id)
        raise HTTPException(status_code=500, detail="Error interno finalizando el plano")

    return result


# =======================================================
# Quotas avulsas
# =======================================================

@router.post(
    "/condominiums/{condominium_id}/standalone",
    response_model=FinalizeOut,
    status_code=status.HTTP_201_CREATED,
)
def crear_quota_avulsa(
    condominium_id: int,
    payload: StandaloneQuotaIn,
    db: Session = Depends(get_db),
):
    try:
        result = create_standalone_quota(
            db,
            condominium_id,
            title=payload.title,
            total_amount=payload.total_amount,
            duration_months=payload.duration_months,
            notes=payload.notes,
        )
    except QuotaError as e:
        logger.warning(
            "[quotas] standalone rejected condominium_id=%s error=%s", condominium_id, e.message
        )
        raise _http_error(e)
    except Exception:
        logger.exception("[quotas] standalone FAILED condominium_id=%s", condominium_id)
        raise HTTPException(status_code=500, detail="Error interno creando la quota avulsa")

    return result


# =======================================================
# Planos guardados
# =======================================================

@router.get("/condominiums/{condominium_id}/schedules", response_model=List[QuotaScheduleOut])
def listar_planos(condominium_id: int, db: Session = Depends(get_db)):
    """
    Planos del condominio (más recientes primero).
    """
    try:
        rows = list_schedules(db, condominium_id)
    except QuotaError as e:
        raise _http_error(e)
    except Exception:
        logger.exception("[quotas] listar FAILED condominium_id=%s", condominium_id)
        raise HTTPException(status_code=500, detail="Error interno listando planos")

    out: List[QuotaScheduleOut] = []
    for schedule, year in rows:
        item = QuotaScheduleOut.model_validate(schedule)
        item.budget_year = year
        out.append(item)

    logger.info("[quotas] listar condominium_id=%s count=%s", condominium_id, len(out))
    return out


@router.get("/schedules/{schedule_id}/items", response_model=List[QuotaScheduleItemOut])
def listar_lineas(schedule_id: int, db: Session = Depends(get_db)):
    try:
        return list_schedule_items(db, schedule_id)
    except QuotaError as e:
        raise _http_error(e)
    except Exception:
        logger.exception("[quotas] items FAILED schedule_id=%s", schedule_id)
        raise HTTPException(status_code=500, detail="Error interno listando líneas del plano")


@router.delete("/condominiums/{condominium_id}/schedules", response_model=ClearQuotasOut)
def borrar_planos(condominium_id: int, db: Session = Depends(get_db)):
    """
    Borra los planos del condominio y sus pagos pendientes.
    Los pagos pagados / vencidos se conservan.
    """
    try:
        counts = clear_generated_quotas(db, condominium_id)
    except QuotaError as e:
        raise _http_error(e)
    except Exception:
        logger.exception("[quotas] clear FAILED condominium_id=%s", condominium_id)
        raise HTTPException(status_code=500, detail="Error interno borrando planos")

    return ClearQuotasOut(**counts)


# =======================================================
# Ámbito de reparto de una categoría
# =======================================================

@router.put("/categories/{category_id}/allocation", response_model=CategoryAllocationOut)
def cambiar_ambito(
    category_id: int,
    payload: CategoryAllocationIn,
    db: Session = Depends(get_db),
):
    try:
        category = set_category_allocation(
            db,
            category_id,
            payload.scope,
            unit_types=[t.value for t in payload.unit_types],
            unit_ids=payload.unit_ids,
        )
    except QuotaError as e:
        raise _http_error(e)
    except Exception:
        logger.exception("[quotas] allocation FAILED category_id=%s", category_id)
        raise HTTPException(status_code=500, detail="Error interno cambiando el ámbito de reparto")

    return _allocation_out(category)
