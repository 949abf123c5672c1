# src/rental_pricing/api/routes.py
"""
Admin routes for the pricing configuration: percentage settings and the
duration dropdown catalog.

Field names on the wire follow the admin UI (camelCase); snake_case is
accepted too.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..db import SessionLocal
from ..rules.fee_engine import PercentageSettings
from ..rules.pricing_config import (
    InvalidCatalogEntry,
    InvalidPercentage,
    get_settings,
    list_catalog_entries,
    upsert_catalog_entries,
    upsert_settings,
)

logger = logging.getLogger("rental-pricing-api")

router = APIRouter(prefix="/api/admin", tags=["Admin Settings"])


# ============ Pydantic Models ============

class PercentageSettingsIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    admin_fee_percentage: Optional[Decimal] = Field(None, alias="adminFeePercentage", examples=[10])
    insurance_percentage: Optional[Decimal] = Field(None, alias="insurancePercentage", examples=[7])
    daily_insurance_multiplier: Optional[Decimal] = Field(None, alias="dailyInsuranceMultiplier", examples=[0])
    deposit_percentage: Optional[Decimal] = Field(None, alias="depositPercentage", examples=[20])
    tax_percentage: Optional[Decimal] = Field(None, alias="taxPercentage", examples=[13])
    stripe_fee_percentage: Optional[Decimal] = Field(None, alias="stripeFeePercentage", examples=[2.9])


# ============ Percentage settings ============

@router.get("/percentage-settings")
def read_percentage_settings() -> Dict[str, Any]:
    db: Session = SessionLocal()
    try:
        row = get_settings(db)
        if row is None:
            raise HTTPException(status_code=404, detail="Percentage settings not found")
        return PercentageSettings.from_record(row).as_dict()
    finally:
        db.close()


@router.put("/percentage-settings")
def write_percentage_settings(body: PercentageSettingsIn) -> Dict[str, Any]:
    db: Session = SessionLocal()
    try:
        row = upsert_settings(db, body.model_dump(exclude_none=True))
        return PercentageSettings.from_record(row).as_dict()
    except InvalidPercentage as e:
        raise HTTPException(status_code=400, detail=str(e))
    finally:
        db.close()


# ============ Duration dropdowns ============

@router.get("/equipment-dropdowns")
def read_equipment_dropdowns() -> Dict[str, Any]:
    db: Session = SessionLocal()
    try:
        entries = list_catalog_entries(db)
        return {
            "data": [
                {
                    "name": e.name,
                    "unit": e.unit,
                    "options": [
                        {"label": o.label, "value": o.value, "recommended": o.recommended}
                        for o in e.options
                    ],
                }
                for e in entries
            ]
        }
    finally:
        db.close()


@router.put("/equipment-dropdowns")
def write_equipment_dropdowns(dropdowns: List[Dict[str, Any]] = Body(...)) -> Dict[str, Any]:
    if not dropdowns:
        raise HTTPException(status_code=400, detail="Dropdowns array is required.")
    db: Session = SessionLocal()
    try:
        written = upsert_catalog_entries(db, dropdowns)
        return {"updated": [e.name for e in written]}
    except InvalidCatalogEntry as e:
        raise HTTPException(status_code=400, detail={"name": e.name, "message": str(e)})
    finally:
        db.close()
