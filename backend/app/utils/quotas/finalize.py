# backend/app/utils/quotas/finalize.py

"""
Finalización de planos: de plano en memoria a filas persistidas.

Cada finalización es UNA unidad de trabajo:

    snapshot (quota_schedules)
    + líneas (quota_schedule_items)
    + pagos pendientes (payments)

o se guarda todo (un único commit) o no se guarda nada (rollback en
cualquier error). Además, dos finalizaciones del mismo orçamento (o de
quotas avulsas del mismo condominio) nunca corren a la vez:

- lock en proceso (threading.Lock por clave), y
- lock de fila en BD (SELECT ... FOR UPDATE) sobre el orçamento /
  condominio, para cuando hay varios procesos contra Postgres.

Re-finalizar un orçamento que ya tiene plano finalizado se rechaza
(ScheduleAlreadyFinalizedError). Para regenerar hay que borrar antes los
planos del condominio (storage.clear_generated_quotas).
"""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.constants import PAYMENT_STATUS_PENDING, SCHEDULE_STATUS_FINALIZED
from backend.app.db import models
from backend.app.utils.quotas.errors import (
    BudgetNotFoundError,
    CondominiumNotFoundError,
    PersistenceError,
    QuotaError,
    QuotaValidationError,
    ScheduleAlreadyFinalizedError,
)
from backend.app.utils.quotas.obligations import build_budget_obligations, build_standalone_obligations
from backend.app.utils.quotas.schedule import build_schedule
from backend.app.utils.quotas.standalone import build_standalone_plan, validate_standalone_request
from backend.app.utils.quotas.storage import load_budget_inputs, load_units
from backend.app.utils.quotas.types import ObligationDraft, Schedule

logger = logging.getLogger(__name__)


# ============================
# Locks por orçamento / condominio
# ============================

# La entrada desaparece cuando ningún hilo retiene ya el lock
_LOCKS: "weakref.WeakValueDictionary[Tuple[str, int], threading.Lock]" = (
    weakref.WeakValueDictionary()
)
_LOCKS_GUARD = threading.Lock()


def finalize_lock(kind: str, key: int) -> threading.Lock:
    """
    Lock (reutilizable) que serializa finalizaciones de la misma clave.
    kind: 'budget' o 'standalone'.
    """
    with _LOCKS_GUARD:
        lock = _LOCKS.get((kind, key))
        if lock is None:
            lock = threading.Lock()
            _LOCKS[(kind, key)] = lock
        return lock


# ============================
# Resultado
# ============================

@dataclass(frozen=True)
class FinalizeResult:
    schedule_id: int
    version: int
    status: str
    is_standalone: bool
    item_count: int
    obligation_count: int
    total_amount: float


# ============================
# Escritura
# ============================

def _persist_snapshot(
    db: Session,
    snapshot: models.QuotaSchedule,
    drafts: List[ObligationDraft],
) -> None:
    """
    Añade snapshot, líneas y pagos a la sesión (sin commit).
    Una línea y un pago por cada borrador (importes > 0).
    """
    db.add(snapshot)
    db.flush()  # asegura snapshot.id

    db.add_all(
        [
            models.QuotaScheduleItem(
                schedule_id=snapshot.id,
                unit_id=d.unit_id,
                month_index=d.month_index,
                amount=d.amount,
            )
            for d in drafts
        ]
    )
    db.flush()

    db.add_all(
        [
            models.Payment(
                unit_id=d.unit_id,
                schedule_id=snapshot.id,
                amount=d.amount,
                issue_date=d.issue_date,
                due_date=d.due_date,
                period=d.period,
                status=PAYMENT_STATUS_PENDING,
                notes=d.notes,
            )
            for d in drafts
        ]
    )
    db.flush()


def _result(snapshot: models.QuotaSchedule, drafts: List[ObligationDraft]) -> FinalizeResult:
    return FinalizeResult(
        schedule_id=snapshot.id,
        version=snapshot.version,
        status=snapshot.status,
        is_standalone=bool(snapshot.is_standalone),
        item_count=len(drafts),
        obligation_count=len(drafts),
        total_amount=sum(d.amount for d in drafts),
    )


# ============================
# Orçamento
# ============================

def preview_budget_schedule(db: Session, budget_id: int) -> Schedule:
    """Plano en memoria (no escribe nada)."""
    return build_schedule(load_budget_inputs(db, budget_id))


def finalize_budget_schedule(
    db: Session,
    budget_id: int,
    *,
    notes: Optional[str] = None,
) -> FinalizeResult:
    """
    Calcula y persiste el plano del orçamento y sus pagos pendientes.

    Errores:
    - BudgetNotFoundError: el orçamento no existe.
    - ScheduleAlreadyFinalizedError: ya tiene plano finalizado.
    - QuotaValidationError: datos inválidos o plano sin importes.
    - PersistenceError: fallo de BD (rollback completo).
    """
    with finalize_lock("budget", budget_id):
        try:
            budget = (
                db.query(models.Budget)
                .filter(models.Budget.id == budget_id)
                .with_for_update()
                .one_or_none()
            )
            if budget is None:
                raise BudgetNotFoundError("Orçamento no encontrado", budget_id=budget_id)

            finalized_id = db.execute(
                select(models.QuotaSchedule.id).where(
                    models.QuotaSchedule.budget_id == budget_id,
                    models.QuotaSchedule.status == SCHEDULE_STATUS_FINALIZED,
                )
            ).scalars().first()
            if finalized_id is not None:
                raise ScheduleAlreadyFinalizedError(
                    "El orçamento ya tiene un plano de quotas finalizado.",
                    budget_id=budget_id,
                )

            schedule = build_schedule(load_budget_inputs(db, budget_id, budget_row=budget))
            drafts = build_budget_obligations(schedule)
            if not drafts:
                raise QuotaValidationError(
                    "El plano no tiene importes que generar (sin fracciones o sin categorías).",
                    budget_id=budget_id,
                )

            snapshot = models.QuotaSchedule(
                budget_id=budget_id,
                # Solo puede existir un plano por orçamento; tras borrar los
                # planos del condominio la numeración vuelve a empezar.
                version=1,
                generated_at=datetime.now(timezone.utc),
                status=SCHEDULE_STATUS_FINALIZED,
                notes=(notes or "").strip()
                or f"Generated automatically on {date.today().isoformat()}",
                is_standalone=False,
            )
            _persist_snapshot(db, snapshot, drafts)
            db.commit()

        except QuotaError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("[quotas] finalize FAILED budget_id=%s", budget_id)
            raise PersistenceError(
                "Error guardando el plano de quotas; no se ha creado ningún pago.",
                budget_id=budget_id,
            ) from e

        result = _result(snapshot, drafts)

    logger.info(
        "[quotas] finalize budget_id=%s schedule_id=%s version=%s obligations=%s",
        budget_id,
        result.schedule_id,
        result.version,
        result.obligation_count,
    )
    return result


# ============================
# Quota avulsa
# ============================

def create_standalone_quota(
    db: Session,
    condominium_id: int,
    *,
    title: Optional[str],
    total_amount: float,
    duration_months: int,
    notes: Optional[str] = None,
    start: Optional[date] = None,
) -> FinalizeResult:
    """
    Crea una quota avulsa (snapshot standalone) y sus pagos mensuales.

    Errores:
    - QuotaValidationError: título vacío, importe <= 0, duración fuera de 1-120.
    - CondominiumNotFoundError: el condominio no existe.
    - DegenerateWeightError: la suma de permilagens es 0 (aborta todo).
    - PersistenceError: fallo de BD (rollback completo).
    """
    # Validación antes de tocar la BD
    validate_standalone_request(title, total_amount, duration_months, condominium_id=condominium_id)

    with finalize_lock("standalone", condominium_id):
        try:
            condominium = (
                db.query(models.Condominium)
                .filter(models.Condominium.id == condominium_id)
                .with_for_update()
                .one_or_none()
            )
            if condominium is None:
                raise CondominiumNotFoundError(
                    "Condominio no encontrado", condominium_id=condominium_id
                )

            plan = build_standalone_plan(
                title,
                total_amount,
                duration_months,
                load_units(db, condominium_id),
                start=start,
                notes=notes,
                condominium_id=condominium_id,
            )
            drafts = build_standalone_obligations(plan)

            snapshot = models.QuotaSchedule(
                condominium_id=condominium_id,
                version=1,
                generated_at=datetime.now(timezone.utc),
                status=SCHEDULE_STATUS_FINALIZED,
                notes=plan.notes,
                is_standalone=True,
                total_amount=plan.total_amount,
                duration_months=plan.duration_months,
                title=plan.title,
            )
            _persist_snapshot(db, snapshot, drafts)
            db.commit()

        except QuotaError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("[quotas] standalone FAILED condominium_id=%s", condominium_id)
            raise PersistenceError(
                "Error guardando la quota avulsa; no se ha creado ningún pago.",
                condominium_id=condominium_id,
            ) from e

        result = _result(snapshot, drafts)

    logger.info(
        "[quotas] standalone condominium_id=%s schedule_id=%s months=%s obligations=%s",
        condominium_id,
        result.schedule_id,
        duration_months,
        result.obligation_count,
    )
    return result
