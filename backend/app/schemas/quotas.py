from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.db.models import UnitType


# ============================
# Pydantic: PLANO (preview)
# ============================

class UnitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    unit_number: str
    unit_type: UnitType
    weight: float


class ScheduleRowOut(BaseModel):
    """
    Fila del plano: 12 importes (orden fiscal Feb..Jan) + total anual.
    """
    model_config = ConfigDict(from_attributes=True)

    unit: UnitOut
    monthly: List[float]
    annual_total: float


class CategorySummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category_id: int
    name: str
    total: float
    participant_count: int
    scope_label: str
    monthly_total: float
    contributes_to_fcr: bool
    degenerate: bool


class ScheduleOut(BaseModel):
    budget_id: int
    year: int
    reserve_fund_percentage: float
    month_labels: List[str]
    rows: List[ScheduleRowOut]
    summary: List[CategorySummaryOut]
    grand_total: float


# ============================
# Pydantic: FINALIZAR
# ============================

class FinalizeIn(BaseModel):
    notes: Optional[str] = Field(None, max_length=500)


class FinalizeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    schedule_id: int
    version: int
    status: str
    is_standalone: bool
    item_count: int
    obligation_count: int
    total_amount: float


# ============================
# Pydantic: QUOTA AVULSA
# ============================

class StandaloneQuotaIn(BaseModel):
    """
    Quota avulsa:
      - title: obligatorio
      - total_amount: > 0
      - duration_months: 1..120
    """
    title: str = Field(..., min_length=1, max_length=200)
    total_amount: float = Field(..., gt=0, allow_inf_nan=False)
    duration_months: int = Field(..., ge=1, le=120)
    notes: Optional[str] = Field(None, max_length=500)


# ============================
# Pydantic: PLANOS GUARDADOS
# ============================

class QuotaScheduleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    budget_id: Optional[int] = None
    condominium_id: Optional[int] = None
    budget_year: Optional[int] = None
    version: int
    generated_at: datetime
    status: str
    notes: Optional[str] = None
    is_standalone: bool
    total_amount: Optional[float] = None
    duration_months: Optional[int] = None
    title: Optional[str] = None


class QuotaScheduleItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    schedule_id: int
    unit_id: int
    month_index: int
    amount: float


class ClearQuotasOut(BaseModel):
    schedules: int
    items: int
    payments: int


# ============================
# Pydantic: ÁMBITO DE CATEGORÍA
# ============================

class CategoryAllocationIn(BaseModel):
    scope: Literal["all", "unit_types", "custom"]
    unit_types: List[UnitType] = Field(default_factory=list)
    unit_ids: List[int] = Field(default_factory=list)


class CategoryAllocationOut(BaseModel):
    id: int
    name: str
    allocation_scope: str
    eligible_unit_types: Optional[List[UnitType]] = None
    unit_ids: List[int]
