# backend/app/utils/quotas/export.py

"""
Exportación del plano anual como texto delimitado.

Formato:
- separador de campo ';'
- separador decimal ','
- 2 decimales
- cabecera: Unit;Feb;...;Dec;Jan;Annual total (orden del año fiscal)
- filas por identificador de fracción ascendente (orden del plano)
"""

from __future__ import annotations

import csv
import io
from typing import Optional

from backend.app.core.constants import (
    CSV_DELIMITER,
    CSV_FILENAME_PREFIX,
    CSV_TOTAL_HEADER,
    CSV_UNIT_HEADER,
    FISCAL_MONTH_LABELS,
)
from backend.app.utils.quotas.types import Schedule


def format_amount(value: float) -> str:
    """1234.5 -> '1234,50'"""
    return f"{value:.2f}".replace(".", ",")


def export_schedule_csv(schedule: Schedule) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=CSV_DELIMITER, lineterminator="\n")

    writer.writerow([CSV_UNIT_HEADER, *FISCAL_MONTH_LABELS, CSV_TOTAL_HEADER])
    for row in schedule.rows:
        writer.writerow(
            [
                row.unit.unit_number,
                *(format_amount(v) for v in row.monthly),
                format_amount(row.annual_total),
            ]
        )

    return buf.getvalue()


def export_filename(year: Optional[int]) -> str:
    label = str(year) if year else "condominium"
    return f"{CSV_FILENAME_PREFIX}-{label}.csv"
