"""
Declarative base for the billing tables.

Money is stored as fixed-point decimals, never floats; durations as integer
seconds.
"""

import datetime as dt
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import DateTime, Numeric
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for all billing tables."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(12, 2),
        dt.datetime: DateTime(),
    }
