# backend/app/db/custom_types.py

"""
Tipos personalizados relacionados con la base de datos y los schemas.

- Weight: alias tipado de float para la permilagem de una fracción.
- Money: alias tipado de float para importes de quotas.

El motor reparte con float (las propiedades de reparto se comprueban con
tolerancia), y el redondeo a 2 decimales solo se aplica al presentar
(CSV, respuestas API).
"""

from typing import TypeAlias

Weight: TypeAlias = float
Money: TypeAlias = float
