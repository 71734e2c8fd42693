"""
Module: statement_kernel.db.base
Responsibility: Declarative base for the ORM models that back the event data
    source and reference data selectors.  Provides the integer primary key
    convention and the type annotation map for consistent column types.
Architecture position: Kernel > DB.  The lowest-level import target within
    the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, selectors/, domain/, or outer layers.
Invariants enforced:
    - Integer primary keys: event IDs, facility IDs and period IDs are the
      numeric identifiers that templates and access scopes refer to.
    - Decimal precision: type_annotation_map maps Python Decimal to
      Numeric(18, 2), the currency precision of every stored amount.
      NEVER use float for monetary amounts.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar

from sqlalchemy import Date, DateTime, Integer, Numeric
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Contract:
        Every ORM model in the kernel inherits from Base.

    Guarantees:
        - id is an autoincrementing Integer primary key.
        - Decimal maps to Numeric(18, 2).
        - datetime maps to DateTime(timezone=True).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 2),
        datetime: DateTime(timezone=True),
        date: Date,
        int: Integer,
    }

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
