# ============================================================
# Condominio - Modelos SQLAlchemy
# - Fracciones (units) con permilagem y tipo
# - Orçamentos (budgets) y categorías con ámbito de reparto
# - Planos de quotas (snapshots), sus líneas y pagos pendientes
#
# Ajustes:
#   * eligible_unit_types pasa a columna JSON (lista de UnitType);
#     se valida al convertir a tipos del motor, no se parsea texto libre.
#   * payments.schedule_id enlaza cada pago con el plano que lo generó.
# ============================================================

import enum

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, JSON,
    Date, DateTime, ForeignKey, CheckConstraint,
    Enum as SAEnum, text, true, false, Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from backend.app.core.constants import (
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUSES,
    SCHEDULE_STATUS_DRAFT,
    SCHEDULE_STATUSES,
)
from backend.app.db.base import Base


# =============================================
# 1. ENUMERADOS
# =============================================

class UnitType(str, enum.Enum):
    residential = "residential"
    commercial  = "commercial"
    parking     = "parking"
    other       = "other"


class AllocationScope(str, enum.Enum):
    all        = "all"
    unit_types = "unit_types"
    custom     = "custom"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def _in_check(column, values):
    """Cláusula IN para un CheckConstraint, p.ej. status IN ('a', 'b')."""
    return f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"


# =============================================
# 2. CONDOMINIO Y FRACCIONES
# =============================================

class Condominium(Base):
    __tablename__ = "condominiums"
    __table_args__ = {"extend_existing": True}

    id         = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name       = Column(String, nullable=False)
    address    = Column(String, nullable=True)
    nipc       = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    units     = relationship("Unit", back_populates="condominium", order_by="Unit.unit_number")
    budgets   = relationship("Budget", back_populates="condominium")
    schedules = relationship("QuotaSchedule", back_populates="condominium")


class Unit(Base):
    __tablename__ = "units"
    __table_args__ = (
        CheckConstraint("permilagem >= 0", name="permilagem_non_negative"),
        {"extend_existing": True},
    )

    id             = Column(Integer, primary_key=True, index=True, autoincrement=True)
    condominium_id = Column(Integer, ForeignKey("condominiums.id", ondelete="CASCADE"), nullable=False, index=True)
    unit_number    = Column(String, nullable=False)
    unit_type      = Column(
        SAEnum(UnitType, name="unit_type_enum", values_callable=_enum_values),
        nullable=False,
        server_default=UnitType.residential.value,
    )
    floor          = Column(String, nullable=True)
    # Permilagem: peso de la fracción en la propiedad total
    weight         = Column("permilagem", Float, nullable=False, server_default=text("0"))
    notes          = Column(String, nullable=True)
    created_at     = Column(DateTime(timezone=True), server_default=func.now())

    condominium = relationship("Condominium", back_populates="units")
    payments    = relationship("Payment", back_populates="unit")


# =============================================
# 3. ORÇAMENTOS
# =============================================

class Budget(Base):
    __tablename__ = "budgets"
    __table_args__ = (
        CheckConstraint(
            "reserve_fund_percentage >= 0 AND reserve_fund_percentage <= 100",
            name="reserve_fund_percentage_range",
        ),
        {"extend_existing": True},
    )

    id                      = Column(Integer, primary_key=True, index=True, autoincrement=True)
    condominium_id          = Column(Integer, ForeignKey("condominiums.id", ondelete="CASCADE"), nullable=False, index=True)
    year                    = Column(Integer, nullable=False, index=True)
    total_amount            = Column(Float, nullable=False, server_default=text("0"))
    reserve_fund_percentage = Column(Float, nullable=False, server_default=text("10"))
    reserve_fund_amount     = Column(Float, nullable=True)
    description             = Column(String, nullable=True)
    created_at              = Column(DateTime(timezone=True), server_default=func.now())

    condominium = relationship("Condominium", back_populates="budgets")
    categories  = relationship(
        "BudgetCategory",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="BudgetCategory.name",
    )
    schedules   = relationship("QuotaSchedule", back_populates="budget")


class BudgetCategory(Base):
    __tablename__ = "budget_categories"
    __table_args__ = (
        CheckConstraint("planned_amount >= 0", name="planned_amount_non_negative"),
        CheckConstraint(
            _in_check("allocation_scope", _enum_values(AllocationScope)),
            name="allocation_scope_values",
        ),
        {"extend_existing": True},
    )

    id                  = Column(Integer, primary_key=True, index=True, autoincrement=True)
    budget_id           = Column(Integer, ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False, index=True)
    name                = Column(String, nullable=False)
    planned_amount      = Column(Float, nullable=False, server_default=text("0"))
    description         = Column(String, nullable=True)
    category_type       = Column(String, nullable=True)
    allocation_scope    = Column(String, nullable=False, server_default=AllocationScope.all.value)
    # Lista de UnitType (valores) cuando allocation_scope = unit_types
    eligible_unit_types = Column(JSON, nullable=True)
    contributes_to_fcr  = Column(Boolean, nullable=False, server_default=true())

    budget           = relationship("Budget", back_populates="categories")
    unit_assignments = relationship(
        "BudgetCategoryUnit",
        back_populates="category",
        cascade="all, delete-orphan",
    )


class BudgetCategoryUnit(Base):
    """
    Arista categoría <-> fracción (solo relevante con ámbito custom).
    """
    __tablename__ = "budget_category_units"
    __table_args__ = {"extend_existing": True}

    category_id = Column(Integer, ForeignKey("budget_categories.id", ondelete="CASCADE"), primary_key=True)
    unit_id     = Column(Integer, ForeignKey("units.id", ondelete="CASCADE"), primary_key=True)

    category = relationship("BudgetCategory", back_populates="unit_assignments")
    unit     = relationship("Unit")


# =============================================
# 4. PLANOS DE QUOTAS
# =============================================

class QuotaSchedule(Base):
    """
    Snapshot persistido de un plano de quotas.

    - Plano de orçamento: budget_id informado, is_standalone = False.
    - Quota avulsa: condominium_id + title/total_amount/duration_months,
      is_standalone = True.
    Inmutable una vez creado.
    """
    __tablename__ = "quota_schedules"
    __table_args__ = (
        CheckConstraint(_in_check("status", SCHEDULE_STATUSES), name="status_values"),
        CheckConstraint(
            "duration_months IS NULL OR (duration_months >= 1 AND duration_months <= 120)",
            name="duration_months_range",
        ),
        {"extend_existing": True},
    )

    id              = Column(Integer, primary_key=True, index=True, autoincrement=True)
    budget_id       = Column(Integer, ForeignKey("budgets.id", ondelete="CASCADE"), nullable=True, index=True)
    condominium_id  = Column(Integer, ForeignKey("condominiums.id", ondelete="CASCADE"), nullable=True, index=True)
    version         = Column(Integer, nullable=False, server_default=text("1"))
    generated_at    = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    status          = Column(String, nullable=False, server_default=SCHEDULE_STATUS_DRAFT)
    notes           = Column(String, nullable=True)
    is_standalone   = Column(Boolean, nullable=False, server_default=false())
    total_amount    = Column(Float, nullable=True)
    duration_months = Column(Integer, nullable=True)
    title           = Column(String, nullable=True)

    budget      = relationship("Budget", back_populates="schedules")
    condominium = relationship("Condominium", back_populates="schedules")
    items       = relationship(
        "QuotaScheduleItem",
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="QuotaScheduleItem.id",
    )


class QuotaScheduleItem(Base):
    __tablename__ = "quota_schedule_items"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="amount_non_negative"),
        CheckConstraint("month_index >= 0", name="month_index_non_negative"),
        Index("ix_quota_schedule_items_schedule_unit", "schedule_id", "unit_id"),
        {"extend_existing": True},
    )

    id          = Column(Integer, primary_key=True, autoincrement=True)
    schedule_id = Column(Integer, ForeignKey("quota_schedules.id", ondelete="CASCADE"), nullable=False)
    unit_id     = Column(Integer, ForeignKey("units.id", ondelete="CASCADE"), nullable=False, index=True)
    month_index = Column(Integer, nullable=False)
    amount      = Column(Float, nullable=False)

    schedule = relationship("QuotaSchedule", back_populates="items")
    unit     = relationship("Unit")


# =============================================
# 5. PAGOS (obligaciones generadas)
# =============================================

class Payment(Base):
    """
    Obligación de pago de una fracción.

    El motor de quotas solo crea filas en estado 'pending'; el ciclo de
    vida posterior (paid / overdue) lo gestiona el módulo de pagos.
    """
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint(_in_check("status", PAYMENT_STATUSES), name="status_values"),
        Index("ix_payments_unit_period", "unit_id", "period"),
        {"extend_existing": True},
    )

    id          = Column(Integer, primary_key=True, index=True, autoincrement=True)
    unit_id     = Column(Integer, ForeignKey("units.id", ondelete="CASCADE"), nullable=False)
    schedule_id = Column(Integer, ForeignKey("quota_schedules.id", ondelete="SET NULL"), nullable=True, index=True)
    amount      = Column(Float, nullable=False)
    issue_date  = Column("payment_date", Date, nullable=False)
    due_date    = Column(Date, nullable=True)
    period      = Column(String(7), nullable=True)
    status      = Column(String, nullable=False, server_default=PAYMENT_STATUS_PENDING, index=True)
    paid_at     = Column(DateTime(timezone=True), nullable=True)
    notes       = Column(String, nullable=True)
    created_at  = Column(DateTime(timezone=True), server_default=func.now())

    unit     = relationship("Unit", back_populates="payments")
    schedule = relationship("QuotaSchedule")
