from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import text
from sqlalchemy.orm import Session

from .routes import router as admin_router
from ..db import SessionLocal, init_db
from ..maintenance import DURATION_FIELDS
from ..models import Equipment
from ..rules import geo
from ..rules.duration import resolve
from ..rules.fee_engine import DurationFactorMode, FeeEngine, SettingsUnavailable
from ..rules.pricing_config import catalog_lookup, get_catalog_entry, load_percentage_settings
from ..settings import settings

# ---------------- Logging ----------------
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("rental-pricing-api")

API_VERSION = "0.1.0"

app = FastAPI(
    title="Rental Pricing API",
    version=API_VERSION,
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(admin_router)


# ---------- Models ----------

class FeePreviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rental_fee: Decimal = Field(..., ge=0, alias="rentalFee", examples=[100])
    is_insurance: bool = Field(False, alias="isInsurance")
    rental_days: int = Field(1, ge=1, alias="rentalDays", examples=[2])
    equipment_value: Decimal = Field(Decimal("0"), ge=0, alias="equipmentValue", examples=[1000])


class EquipmentFeePreviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_insurance: bool = Field(False, alias="isInsurance")
    rental_days: int = Field(1, ge=1, alias="rentalDays")


class GeoJSONPointIn(BaseModel):
    type: str = "Point"
    coordinates: list[float]


class LocationIn(BaseModel):
    address: Optional[str] = None
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    coordinates: Optional[GeoJSONPointIn] = None


# ---------- Helpers ----------

def _duration_factor_mode() -> DurationFactorMode:
    return DurationFactorMode(settings.insurance_duration_factor_mode)


def _pricing_unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"detail": "pricing temporarily unavailable"},
        headers={"Retry-After": str(settings.pricing_retry_after_seconds)},
    )


def _quote(db: Session, rental_fee: Decimal, is_insurance: bool, rental_days: int, equipment_value: Decimal) -> Dict[str, Any]:
    pct = load_percentage_settings(db)
    engine = FeeEngine(pct, duration_factor_mode=_duration_factor_mode())
    breakdown = engine.calculate(rental_fee, is_insurance, rental_days, equipment_value)
    payload: Dict[str, Any] = breakdown.as_dict()
    payload["rental_days"] = rental_days
    payload["is_insurance"] = is_insurance
    if is_insurance:
        payload["insurance_duration_factor"] = str(engine.duration_factor(rental_days))
    return payload


def _get_equipment(db: Session, equipment_id: int) -> Equipment:
    eq = db.get(Equipment, equipment_id)
    if eq is None:
        raise HTTPException(status_code=404, detail=f"Equipment {equipment_id} not found")
    return eq


# ----- Startup -----
@app.on_event("startup")
def _startup():
    try:
        init_db()
        logger.info("Startup complete, DB initialized.")
    except Exception:
        logger.exception("DB init failed during startup; continuing without blocking app.")


# ----- System -----
@app.get("/health", tags=["System"])
def health() -> Dict[str, Any]:
    db_ok = True
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1")).scalar()
    except Exception:
        db_ok = False
    return {
        "ok": True,
        "version": API_VERSION,
        "db_ok": db_ok,
        "insurance_duration_factor_mode": settings.insurance_duration_factor_mode,
    }


# ----- Pricing -----
@app.post("/orders/fee-preview", tags=["Pricing"])
def fee_preview(req: FeePreviewRequest):
    db: Session = SessionLocal()
    try:
        return _quote(db, req.rental_fee, req.is_insurance, req.rental_days, req.equipment_value)
    except SettingsUnavailable:
        logger.warning("Fee preview refused: percentage settings missing")
        return _pricing_unavailable()
    except HTTPException:
        raise
    except Exception:
        logger.exception("Fee preview failed")
        raise HTTPException(status_code=500, detail="fee calculation failed")
    finally:
        db.close()


@app.post("/equipment/{equipment_id}/fee-preview", tags=["Pricing"])
def equipment_fee_preview(equipment_id: int, req: EquipmentFeePreviewRequest):
    db: Session = SessionLocal()
    try:
        eq = _get_equipment(db, equipment_id)
        rental_fee = Decimal(eq.rental_price) * req.rental_days
        payload = _quote(db, rental_fee, req.is_insurance, req.rental_days, Decimal(eq.equipment_price))
        payload["equipment_id"] = eq.id
        return payload
    except SettingsUnavailable:
        logger.warning("Equipment fee preview refused: percentage settings missing")
        return _pricing_unavailable()
    except HTTPException:
        raise
    except Exception:
        logger.exception("Equipment fee preview failed")
        raise HTTPException(status_code=500, detail="fee calculation failed")
    finally:
        db.close()


# ----- Equipment -----
@app.get("/equipment/{equipment_id}/durations", tags=["Equipment"])
def equipment_durations(equipment_id: int) -> Dict[str, Any]:
    db: Session = SessionLocal()
    try:
        eq = _get_equipment(db, equipment_id)
        lookup = catalog_lookup(db)
        out: Dict[str, Any] = {"equipment_id": eq.id}
        for attr, (catalog_name, default) in DURATION_FIELDS.items():
            target = get_catalog_entry(db, catalog_name)
            out[attr] = resolve(getattr(eq, attr), lookup, default, target=target).as_dict()
        return out
    finally:
        db.close()


@app.put("/equipment/{equipment_id}/location", tags=["Equipment"])
def update_equipment_location(equipment_id: int, loc: LocationIn) -> Dict[str, Any]:
    db: Session = SessionLocal()
    try:
        eq = _get_equipment(db, equipment_id)
        # Equipment.location normalizes on assignment
        eq.location = loc.model_dump(exclude_none=True)
        db.commit()
        db.refresh(eq)
        stored = geo.GeoPoint.from_document(eq.location or {})
        return {
            "equipment_id": eq.id,
            "location": eq.location,
            "has_valid_coordinates": geo.has_valid_coordinates(stored),
        }
    except HTTPException:
        raise
    except Exception:
        db.rollback()
        logger.exception("Location update failed for equipment %s", equipment_id)
        raise HTTPException(status_code=500, detail="location update failed")
    finally:
        db.close()
