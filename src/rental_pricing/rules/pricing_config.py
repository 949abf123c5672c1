"""Read/upsert access to the percentage settings record and the duration catalog."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import EquipmentDropdown, PercentageSetting
from .duration import CatalogEntry, DurationOption
from .fee_engine import PercentageSettings, SettingsUnavailable

__all__ = [
    "CATALOG_NAMES",
    "DEFAULT_CATALOG",
    "DEFAULT_PERCENTAGES",
    "InvalidCatalogEntry",
    "InvalidCatalogName",
    "InvalidCatalogOption",
    "InvalidCatalogUnit",
    "InvalidPercentage",
    "canonical_catalog_name",
    "catalog_lookup",
    "get_catalog_entry",
    "get_catalog_entry_by_id",
    "get_settings",
    "list_catalog_entries",
    "load_percentage_settings",
    "upsert_catalog_entries",
    "upsert_settings",
]

logger = logging.getLogger(__name__)


class InvalidPercentage(ValueError):
    """A settings value outside its declared bound."""


class InvalidCatalogEntry(ValueError):
    """Base for catalog entries rejected by upsert validation."""

    def __init__(self, name: Optional[str], message: str):
        super().__init__(message)
        self.name = name


class InvalidCatalogName(InvalidCatalogEntry):
    pass


class InvalidCatalogUnit(InvalidCatalogEntry):
    pass


class InvalidCatalogOption(InvalidCatalogEntry):
    pass


# ---------- Percentage settings ----------

# field -> (minimum, maximum); None means unbounded above
PERCENTAGE_BOUNDS: Dict[str, tuple] = {
    "admin_fee_percentage": (Decimal("0"), Decimal("100")),
    "insurance_percentage": (Decimal("0"), Decimal("100")),
    "daily_insurance_multiplier": (Decimal("0"), None),
    "deposit_percentage": (Decimal("0"), Decimal("100")),
    "tax_percentage": (Decimal("0"), Decimal("100")),
    "stripe_fee_percentage": (Decimal("0"), Decimal("100")),
}

DEFAULT_PERCENTAGES: Dict[str, Decimal] = {
    "admin_fee_percentage": Decimal("10"),
    "insurance_percentage": Decimal("7"),
    "daily_insurance_multiplier": Decimal("0"),
    "deposit_percentage": Decimal("20"),
    "tax_percentage": Decimal("13"),
    "stripe_fee_percentage": Decimal("2.9"),
}

# Wire names used by the admin UI
_SETTINGS_ALIASES = {
    "adminFeePercentage": "admin_fee_percentage",
    "insurancePercentage": "insurance_percentage",
    "dailyInsuranceMultiplier": "daily_insurance_multiplier",
    "depositPercentage": "deposit_percentage",
    "taxPercentage": "tax_percentage",
    "stripeFeePercentage": "stripe_fee_percentage",
}


def get_settings(db: Session) -> Optional[PercentageSetting]:
    """Return the live settings row (most recently updated), or None."""
    return (
        db.execute(
            select(PercentageSetting).order_by(
                PercentageSetting.updated_at.desc(), PercentageSetting.id.desc()
            )
        )
        .scalars()
        .first()
    )


def load_percentage_settings(db: Session) -> PercentageSettings:
    """Point-read the live settings as an immutable snapshot for the fee engine."""
    row = get_settings(db)
    if row is None:
        raise SettingsUnavailable()
    return PercentageSettings.from_record(row)


def _clean_percentages(partial: Mapping[str, Any]) -> Dict[str, Decimal]:
    cleaned: Dict[str, Decimal] = {}
    for key, value in partial.items():
        field_name = _SETTINGS_ALIASES.get(key, key)
        if field_name not in PERCENTAGE_BOUNDS:
            raise InvalidPercentage(f"unknown settings field: {key}")
        if value is None:
            continue
        try:
            number = value if isinstance(value, Decimal) else Decimal(str(value))
        except ArithmeticError:
            raise InvalidPercentage(f"{key} must be numeric") from None
        if isinstance(value, bool) or not number.is_finite():
            raise InvalidPercentage(f"{key} must be numeric")
        low, high = PERCENTAGE_BOUNDS[field_name]
        if number < low or (high is not None and number > high):
            bound = f"between {low} and {high}" if high is not None else f">= {low}"
            raise InvalidPercentage(f"{key} must be {bound}")
        cleaned[field_name] = number
    return cleaned


def upsert_settings(db: Session, partial: Mapping[str, Any]) -> PercentageSetting:
    """
    Merge ``partial`` into the live settings record.

    Unspecified (or None) fields keep their previous value; the first-ever
    upsert fills the gaps from DEFAULT_PERCENTAGES. Validation happens before
    anything is written. Concurrent upserts are last-writer-wins.
    """
    cleaned = _clean_percentages(partial)
    row = get_settings(db)
    if row is None:
        row = PercentageSetting(**{**DEFAULT_PERCENTAGES, **cleaned})
        db.add(row)
        logger.info("Created percentage settings with %s", sorted(cleaned))
    else:
        for field_name, value in cleaned.items():
            setattr(row, field_name, value)
        logger.info("Updated percentage settings fields %s", sorted(cleaned))
    db.commit()
    db.refresh(row)
    return row


# ---------- Duration catalog ----------

CATALOG_NAMES = ("advance-notice", "minimum-duration", "maximum-duration")
CATALOG_UNITS = ("hours", "days", "weeks", "months")

_CATALOG_NAME_ALIASES = {
    "advanceNotice": "advance-notice",
    "minimumRentalDuration": "minimum-duration",
    "maximumRentalDuration": "maximum-duration",
}

DEFAULT_CATALOG: List[Dict[str, Any]] = [
    {
        "name": "advance-notice",
        "unit": "days",
        "options": [
            {"label": "Same Day (before 5 PM)", "value": 0, "recommended": True},
            {"label": "1 Day", "value": 1, "recommended": False},
            {"label": "2 Days", "value": 2, "recommended": False},
            {"label": "3 Days", "value": 3, "recommended": False},
            {"label": "4 Days", "value": 4, "recommended": False},
            {"label": "5 Days", "value": 5, "recommended": False},
        ],
    },
    {
        "name": "minimum-duration",
        "unit": "days",
        "options": [
            {"label": "1 Day", "value": 1, "recommended": True},
            {"label": "2 Days", "value": 2, "recommended": False},
            {"label": "3 Days", "value": 3, "recommended": False},
            {"label": "4 Days", "value": 4, "recommended": False},
            {"label": "5 Days", "value": 5, "recommended": False},
        ],
    },
    {
        "name": "maximum-duration",
        "unit": "days",
        "options": [
            {"label": "1 Day", "value": 1, "recommended": False},
            {"label": "2 Days", "value": 2, "recommended": False},
            {"label": "3 Days", "value": 3, "recommended": False},
            {"label": "4 Days", "value": 4, "recommended": False},
            {"label": "5 Days", "value": 5, "recommended": False},
            {"label": "6 Days", "value": 6, "recommended": False},
            {"label": "7 Days (1 Week)", "value": 7, "recommended": True},
            {"label": "14 Days (2 Weeks)", "value": 14, "recommended": False},
            {"label": "30 Days (1 Month)", "value": 30, "recommended": False},
        ],
    },
]


def canonical_catalog_name(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    name = _CATALOG_NAME_ALIASES.get(name, name)
    return name if name in CATALOG_NAMES else None


def _to_entry(row: EquipmentDropdown) -> CatalogEntry:
    options = tuple(
        DurationOption(
            label=str(o["label"]),
            value=int(o["value"]),
            recommended=bool(o.get("recommended", False)),
        )
        for o in (row.options or [])
    )
    return CatalogEntry(id=row.id, name=row.name, unit=row.unit, options=options)


def get_catalog_entry(db: Session, name: str) -> Optional[CatalogEntry]:
    key = canonical_catalog_name(name)
    if key is None:
        return None
    row = db.execute(select(EquipmentDropdown).where(EquipmentDropdown.name == key)).scalar_one_or_none()
    return _to_entry(row) if row else None


def get_catalog_entry_by_id(db: Session, dropdown_id: Any) -> Optional[CatalogEntry]:
    try:
        key = int(dropdown_id)
    except (TypeError, ValueError):
        return None
    row = db.get(EquipmentDropdown, key)
    return _to_entry(row) if row else None


def catalog_lookup(db: Session):
    """
    Bind a session into the ``(id) -> CatalogEntry | None`` lookup the resolver expects.

    A failed catalog read is logged and treated as a missing entry, so the
    resolver falls back to its default instead of raising.
    """

    def lookup(dropdown_id):
        try:
            return get_catalog_entry_by_id(db, dropdown_id)
        except SQLAlchemyError:
            logger.warning("Catalog read failed for dropdown %r; treating as missing", dropdown_id, exc_info=True)
            return None

    return lookup


def list_catalog_entries(db: Session) -> List[CatalogEntry]:
    rows = db.execute(select(EquipmentDropdown).order_by(EquipmentDropdown.id)).scalars().all()
    return [_to_entry(r) for r in rows]


def _validate_catalog_entry(entry: Mapping[str, Any]) -> Dict[str, Any]:
    raw_name = entry.get("name")
    name = canonical_catalog_name(raw_name)
    if name is None:
        raise InvalidCatalogName(raw_name, f"invalid dropdown name {raw_name!r}; expected one of {', '.join(CATALOG_NAMES)}")

    unit = entry.get("unit")
    if unit not in CATALOG_UNITS:
        raise InvalidCatalogUnit(name, f"invalid unit {unit!r} for {name}; expected one of {', '.join(CATALOG_UNITS)}")

    options = entry.get("options")
    if not isinstance(options, (list, tuple)):
        raise InvalidCatalogOption(name, f"{name} must have an options list")

    cleaned: List[Dict[str, Any]] = []
    for option in options:
        if not isinstance(option, Mapping):
            raise InvalidCatalogOption(name, f"each option inside {name} must be an object")
        label = option.get("label")
        value = option.get("value")
        recommended = option.get("recommended")
        if not isinstance(label, str) or not label:
            raise InvalidCatalogOption(name, f"each option inside {name} must have a label (string)")
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidCatalogOption(name, f"each option inside {name} must have a value (integer >= 0)")
        if not isinstance(recommended, bool):
            raise InvalidCatalogOption(name, f"each option inside {name} must have recommended (boolean)")
        cleaned.append({"label": label, "value": value, "recommended": recommended})

    return {"name": name, "unit": unit, "options": cleaned}


def upsert_catalog_entries(db: Session, entries: Iterable[Mapping[str, Any]]) -> List[CatalogEntry]:
    """
    Create or replace catalog entries by name, one commit per entry.

    Each entry is validated before it is written. An invalid entry raises an
    InvalidCatalogEntry subclass; entries earlier in the batch stay committed
    and the invalid entry's stored state is left untouched.
    """
    written: List[CatalogEntry] = []
    for entry in entries:
        try:
            cleaned = _validate_catalog_entry(entry)
        except InvalidCatalogEntry as exc:
            logger.warning("Rejected dropdown entry %r: %s", exc.name, exc)
            raise

        row = db.execute(
            select(EquipmentDropdown).where(EquipmentDropdown.name == cleaned["name"])
        ).scalar_one_or_none()
        if row is None:
            row = EquipmentDropdown(name=cleaned["name"])
            db.add(row)
        row.unit = cleaned["unit"]
        row.options = cleaned["options"]
        db.commit()
        db.refresh(row)
        logger.info("Upserted dropdown %s (%s, %d options)", row.name, row.unit, len(row.options))
        written.append(_to_entry(row))
    return written
