from __future__ import annotations
from typing import Any, Optional
import datetime
from decimal import Decimal

from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, validates
from sqlalchemy import String, Numeric, Integer, DateTime, JSON, func

from .rules.geo import normalize_document


class Base(DeclarativeBase):
    pass


class PercentageSetting(Base):
    """
    Admin-tuned pricing percentages.

    Only the most recently updated row is live; concurrent admin writes are
    last-writer-wins (no version column).
    """

    __tablename__ = "percentage_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    admin_fee_percentage: Mapped[Decimal] = mapped_column(Numeric(7, 4))
    insurance_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(7, 4))
    daily_insurance_multiplier: Mapped[Decimal] = mapped_column(Numeric(7, 4), default=Decimal("0"))
    deposit_percentage: Mapped[Decimal] = mapped_column(Numeric(7, 4))
    tax_percentage: Mapped[Decimal] = mapped_column(Numeric(7, 4))
    stripe_fee_percentage: Mapped[Decimal] = mapped_column(Numeric(7, 4))

    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class EquipmentDropdown(Base):
    """One DurationCatalog entry: a named, unit-tagged list of duration options."""

    __tablename__ = "equipment_dropdowns"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(32), unique=True)   # advance-notice/minimum-duration/maximum-duration
    unit: Mapped[str] = mapped_column(String(16))                # hours/days/weeks/months
    options: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)

    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Equipment(Base):
    __tablename__ = "equipment"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    rental_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    equipment_price: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    # int (canonical days) once migrated; legacy dict shapes before that
    notice_period: Mapped[Optional[Any]] = mapped_column(JSON)
    minimum_trip_duration: Mapped[Optional[Any]] = mapped_column(JSON)
    maximum_trip_duration: Mapped[Optional[Any]] = mapped_column(JSON)
    duration_schema_version: Mapped[int] = mapped_column(Integer, default=1)

    location: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)

    @validates("location")
    def _normalize_location(self, key: str, value: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
        if value is None:
            return None
        return normalize_document(value)
