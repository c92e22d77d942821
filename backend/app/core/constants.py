# backend/app/core/constants.py

"""
Constantes de negocio del motor de quotas.

Aquí concentramos todos los "strings mágicos" que usamos en varios sitios:
- etiquetas de tipos de fracción (los ámbitos son el enum AllocationScope)
- estados de planos y pagos
- etiquetas de meses (orden del año fiscal) y del CSV
"""

# ----------------------------
# Etiquetas de tipos de fracción (para el resumen por categoría)
# ----------------------------
UNIT_TYPE_LABELS = {
    "residential": "Residential",
    "commercial": "Commercial",
    "parking": "Parking",
    "other": "Other",
}

# ----------------------------
# Estados
# ----------------------------
SCHEDULE_STATUS_DRAFT = "draft"
SCHEDULE_STATUS_FINALIZED = "finalized"

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_OVERDUE = "overdue"

SCHEDULE_STATUSES = (SCHEDULE_STATUS_DRAFT, SCHEDULE_STATUS_FINALIZED)
PAYMENT_STATUSES = (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PAID, PAYMENT_STATUS_OVERDUE)

# ----------------------------
# Año fiscal: el índice 0 es febrero y el 11 es enero del año siguiente
# ----------------------------
MONTHS_PER_YEAR = 12
FISCAL_FIRST_MONTH = 2

FISCAL_MONTH_LABELS = [
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
    "Jan",
]

# ----------------------------
# Exportación CSV
# ----------------------------
CSV_DELIMITER = ";"
CSV_UNIT_HEADER = "Unit"
CSV_TOTAL_HEADER = "Annual total"
CSV_FILENAME_PREFIX = "quota-schedule"
