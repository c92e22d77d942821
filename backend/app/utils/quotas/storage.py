# backend/app/utils/quotas/storage.py

"""
Puente entre la BD (modelos SQLAlchemy) y el motor de quotas.

Aquí centralizamos:

- Conversión de filas ORM a tipos inmutables del motor (UnitInfo,
  CategoryInfo, BudgetInfo), validando en la frontera los valores
  enumerados (ámbito y tipos de fracción elegibles).
- Carga de todas las entradas de un orçamento (load_budget_inputs).
- Operaciones de gestión de planos guardados:
    * list_schedules / list_schedule_items
    * clear_generated_quotas
    * set_category_allocation

Ninguna función de este módulo hace commit salvo las operaciones de
gestión, que son una unidad de trabajo completa cada una.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.constants import PAYMENT_STATUS_PENDING
from backend.app.db import models
from backend.app.db.models import AllocationScope, UnitType
from backend.app.utils.quotas.errors import (
    BudgetNotFoundError,
    CategoryNotFoundError,
    CondominiumNotFoundError,
    PersistenceError,
    QuotaValidationError,
    ScheduleNotFoundError,
)
from backend.app.utils.quotas.types import BudgetInfo, BudgetInputs, CategoryInfo, UnitInfo

logger = logging.getLogger(__name__)


# ============================
# Conversión ORM -> motor
# ============================

def parse_unit_types(
    values: Optional[Iterable[str]],
    *,
    category_id: Optional[int] = None,
) -> FrozenSet[UnitType]:
    """
    Convierte la lista guardada en BD a un conjunto de UnitType.

    - None o lista vacía -> conjunto vacío.
    - Valor desconocido o tipo no lista -> QuotaValidationError.
    """
    if values is None:
        return frozenset()
    if isinstance(values, (str, bytes)) or not isinstance(values, (list, tuple, set, frozenset)):
        raise QuotaValidationError(
            "eligible_unit_types debe ser una lista de tipos de fracción.",
            category_id=category_id,
        )
    try:
        return frozenset(UnitType(v) for v in values)
    except ValueError as e:
        raise QuotaValidationError(
            f"Tipo de fracción desconocido: {e}", category_id=category_id
        ) from e


def parse_scope(value: Optional[str], *, category_id: Optional[int] = None) -> AllocationScope:
    try:
        return AllocationScope(value or AllocationScope.all.value)
    except ValueError as e:
        raise QuotaValidationError(
            f"Ámbito de reparto desconocido: {value!r}", category_id=category_id
        ) from e


def to_unit_info(row: models.Unit) -> UnitInfo:
    return UnitInfo(
        id=row.id,
        unit_number=row.unit_number,
        unit_type=UnitType(row.unit_type),
        weight=float(row.weight or 0.0),
    )


def to_category_info(row: models.BudgetCategory) -> CategoryInfo:
    scope = parse_scope(row.allocation_scope, category_id=row.id)
    planned = float(row.planned_amount or 0.0)
    if planned < 0:
        raise QuotaValidationError(
            "planned_amount no puede ser negativo.", category_id=row.id, budget_id=row.budget_id
        )
    return CategoryInfo(
        id=row.id,
        name=row.name,
        planned_amount=planned,
        allocation_scope=scope,
        eligible_unit_types=parse_unit_types(row.eligible_unit_types, category_id=row.id),
        contributes_to_fcr=bool(row.contributes_to_fcr) if row.contributes_to_fcr is not None else True,
    )


def to_budget_info(row: models.Budget) -> BudgetInfo:
    pct = row.reserve_fund_percentage
    if pct is None:
        pct = settings.DEFAULT_RESERVE_FUND_PCT
    return BudgetInfo(
        id=row.id,
        year=row.year,
        total_amount=float(row.total_amount or 0.0),
        reserve_fund_percentage=float(pct),
        condominium_id=row.condominium_id,
    )


# ============================
# Carga de entradas
# ============================

def load_units(db: Session, condominium_id: int) -> Tuple[UnitInfo, ...]:
    stmt = (
        select(models.Unit)
        .where(models.Unit.condominium_id == condominium_id)
        .order_by(models.Unit.unit_number, models.Unit.id)
    )
    return tuple(to_unit_info(u) for u in db.execute(stmt).scalars().all())


def load_assignments(db: Session, category_ids: List[int]) -> Dict[int, FrozenSet[int]]:
    if not category_ids:
        return {}
    stmt = select(models.BudgetCategoryUnit.category_id, models.BudgetCategoryUnit.unit_id).where(
        models.BudgetCategoryUnit.category_id.in_(category_ids)
    )
    grouped: Dict[int, Set[int]] = defaultdict(set)
    for category_id, unit_id in db.execute(stmt).all():
        grouped[category_id].add(unit_id)
    return {k: frozenset(v) for k, v in grouped.items()}


def load_budget_inputs(
    db: Session,
    budget_id: int,
    *,
    budget_row: Optional[models.Budget] = None,
) -> BudgetInputs:
    """
    Lee orçamento, categorías (por nombre), fracciones del condominio y
    asignaciones custom, y las devuelve como BudgetInputs inmutable.
    """
    budget = budget_row if budget_row is not None else db.get(models.Budget, budget_id)
    if budget is None:
        raise BudgetNotFoundError("Orçamento no encontrado", budget_id=budget_id)

    cat_rows = (
        db.execute(
            select(models.BudgetCategory)
            .where(models.BudgetCategory.budget_id == budget_id)
            .order_by(models.BudgetCategory.name, models.BudgetCategory.id)
        )
        .scalars()
        .all()
    )
    categories = tuple(to_category_info(c) for c in cat_rows)

    return BudgetInputs(
        budget=to_budget_info(budget),
        categories=categories,
        units=load_units(db, budget.condominium_id),
        assignments=load_assignments(db, [c.id for c in categories]),
    )


# ============================
# Planos guardados
# ============================

def _condominium_schedule_ids(db: Session, condominium_id: int) -> List[int]:
    budget_ids = select(models.Budget.id).where(models.Budget.condominium_id == condominium_id)
    stmt = select(models.QuotaSchedule.id).where(
        or_(
            models.QuotaSchedule.budget_id.in_(budget_ids),
            models.QuotaSchedule.condominium_id == condominium_id,
        )
    )
    return list(db.execute(stmt).scalars().all())


def list_schedules(db: Session, condominium_id: int) -> List[Tuple[models.QuotaSchedule, Optional[int]]]:
    """
    Planos del condominio (de orçamento y avulsos), más recientes primero,
    junto con el año del orçamento cuando aplica.
    """
    if db.get(models.Condominium, condominium_id) is None:
        raise CondominiumNotFoundError("Condominio no encontrado", condominium_id=condominium_id)

    stmt = (
        select(models.QuotaSchedule, models.Budget.year)
        .outerjoin(models.Budget, models.QuotaSchedule.budget_id == models.Budget.id)
        .where(
            or_(
                models.Budget.condominium_id == condominium_id,
                models.QuotaSchedule.condominium_id == condominium_id,
            )
        )
        .order_by(models.QuotaSchedule.generated_at.desc(), models.QuotaSchedule.id.desc())
    )
    return [(row[0], row[1]) for row in db.execute(stmt).all()]


def list_schedule_items(db: Session, schedule_id: int) -> List[models.QuotaScheduleItem]:
    if db.get(models.QuotaSchedule, schedule_id) is None:
        raise ScheduleNotFoundError("Plano no encontrado", schedule_id=schedule_id)
    stmt = (
        select(models.QuotaScheduleItem)
        .where(models.QuotaScheduleItem.schedule_id == schedule_id)
        .order_by(models.QuotaScheduleItem.unit_id, models.QuotaScheduleItem.month_index)
    )
    return list(db.execute(stmt).scalars().all())


def clear_generated_quotas(db: Session, condominium_id: int) -> Dict[str, int]:
    """
    Borra TODOS los planos del condominio, sus líneas y los pagos
    PENDIENTES de sus fracciones. Los pagos ya pagados o vencidos se
    conservan (se desvinculan del plano).

    Todo en una única transacción.
    """
    if db.get(models.Condominium, condominium_id) is None:
        raise CondominiumNotFoundError("Condominio no encontrado", condominium_id=condominium_id)

    try:
        schedule_ids = _condominium_schedule_ids(db, condominium_id)
        unit_ids = select(models.Unit.id).where(models.Unit.condominium_id == condominium_id)

        deleted_payments = (
            db.query(models.Payment)
            .filter(
                models.Payment.unit_id.in_(unit_ids),
                models.Payment.status == PAYMENT_STATUS_PENDING,
            )
            .delete(synchronize_session=False)
        )

        deleted_items = 0
        deleted_schedules = 0
        if schedule_ids:
            db.query(models.Payment).filter(models.Payment.schedule_id.in_(schedule_ids)).update(
                {models.Payment.schedule_id: None}, synchronize_session=False
            )
            deleted_items = (
                db.query(models.QuotaScheduleItem)
                .filter(models.QuotaScheduleItem.schedule_id.in_(schedule_ids))
                .delete(synchronize_session=False)
            )
            deleted_schedules = (
                db.query(models.QuotaSchedule)
                .filter(models.QuotaSchedule.id.in_(schedule_ids))
                .delete(synchronize_session=False)
            )

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("[quotas] clear FAILED condominium_id=%s", condominium_id)
        raise PersistenceError(
            "Error borrando los planos de quotas", condominium_id=condominium_id
        ) from e

    logger.info(
        "[quotas] clear condominium_id=%s schedules=%s items=%s payments=%s",
        condominium_id,
        deleted_schedules,
        deleted_items,
        deleted_payments,
    )
    return {
        "schedules": deleted_schedules,
        "items": deleted_items,
        "payments": deleted_payments,
    }


# ============================
# Configuración del ámbito de una categoría
# ============================

def set_category_allocation(
    db: Session,
    category_id: int,
    scope: str,
    unit_types: Optional[Iterable[str]] = None,
    unit_ids: Optional[Iterable[int]] = None,
) -> models.BudgetCategory:
    """
    Cambia el ámbito de reparto de una categoría.

    Reglas (validación de formulario, no del motor):
    - unit_types: al menos un tipo.
    - custom: al menos una fracción, todas del condominio del orçamento.
    Las asignaciones custom anteriores se sustituyen siempre.
    """
    category = db.get(models.BudgetCategory, category_id)
    if category is None:
        raise CategoryNotFoundError("Categoría no encontrada", category_id=category_id)

    new_scope = parse_scope(scope, category_id=category_id)
    types = parse_unit_types(list(unit_types or []), category_id=category_id)
    ids = sorted(set(unit_ids or []))

    if new_scope == AllocationScope.unit_types and not types:
        raise QuotaValidationError(
            "Selecciona al menos un tipo de fracción.", category_id=category_id
        )

    if new_scope == AllocationScope.custom:
        if not ids:
            raise QuotaValidationError(
                "Selecciona al menos una fracción para el reparto personalizado.",
                category_id=category_id,
            )
        condominium_id = category.budget.condominium_id
        valid_ids = set(
            db.execute(
                select(models.Unit.id).where(
                    models.Unit.condominium_id == condominium_id,
                    models.Unit.id.in_(ids),
                )
            )
            .scalars()
            .all()
        )
        missing = [i for i in ids if i not in valid_ids]
        if missing:
            raise QuotaValidationError(
                f"Fracciones que no pertenecen al condominio: {missing}",
                category_id=category_id,
                unit_id=missing[0],
            )

    try:
        category.allocation_scope = new_scope.value
        category.eligible_unit_types = (
            [t.value for t in UnitType if t in types]
            if new_scope == AllocationScope.unit_types
            else None
        )

        db.query(models.BudgetCategoryUnit).filter(
            models.BudgetCategoryUnit.category_id == category_id
        ).delete(synchronize_session="fetch")

        if new_scope == AllocationScope.custom:
            db.add_all(
                [models.BudgetCategoryUnit(category_id=category_id, unit_id=i) for i in ids]
            )

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("[quotas] allocation FAILED category_id=%s", category_id)
        raise PersistenceError(
            "Error guardando el ámbito de reparto", category_id=category_id
        ) from e

    db.refresh(category)
    logger.info(
        "[quotas] allocation category_id=%s scope=%s types=%s units=%s",
        category_id,
        new_scope.value,
        len(types),
        len(ids),
    )
    return category
