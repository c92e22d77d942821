# backend/app/utils/quotas/__init__.py
"""
Motor de reparto de quotas del condominio.

- allocation: participantes y cuotas por categoría
- schedule: plano anual (12 meses fiscales) por fracción
- obligations: pagos con fechas a partir de un plano
- standalone: quotas avulsas
- export: CSV del plano
- storage / finalize: lectura y escritura en BD
"""

from .allocation import compute_category_shares, resolve_divisor, resolve_participants
from .export import export_filename, export_schedule_csv
from .obligations import build_budget_obligations, build_standalone_obligations, fiscal_month
from .schedule import build_schedule
from .standalone import build_standalone_plan

__all__ = [
    "build_budget_obligations",
    "build_schedule",
    "build_standalone_obligations",
    "build_standalone_plan",
    "compute_category_shares",
    "export_filename",
    "export_schedule_csv",
    "fiscal_month",
    "resolve_divisor",
    "resolve_participants",
]
