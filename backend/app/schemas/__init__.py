# backend/app/schemas/__init__.py
"""
Paquete de schemas Pydantic del backend de quotas.
"""

from .quotas import (
    FinalizeIn,
    FinalizeOut,
    QuotaScheduleOut,
    ScheduleOut,
    StandaloneQuotaIn,
)

__all__ = [
    "FinalizeIn",
    "FinalizeOut",
    "QuotaScheduleOut",
    "ScheduleOut",
    "StandaloneQuotaIn",
]
