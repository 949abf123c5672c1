"""
Repair and migration routines for equipment records.

These are run by operators (see ``rental_pricing.cli``), never on the request
path. Each routine is idempotent: running it twice changes nothing the
second time.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import Equipment
from .rules import geo
from .rules.duration import CatalogEntry, canonical_days, resolve
from .rules.pricing_config import catalog_lookup, get_catalog_entry

logger = logging.getLogger(__name__)

# 1 = mixed legacy shapes, 2 = plain integer days
DURATION_SCHEMA_VERSION = 2

# field -> (catalog name, default days)
DURATION_FIELDS: Dict[str, tuple] = {
    "notice_period": ("advance-notice", 0),
    "minimum_trip_duration": ("minimum-duration", 1),
    "maximum_trip_duration": ("maximum-duration", 0),
}


@dataclass
class MaintenanceReport:
    examined: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    def as_dict(self) -> dict:
        return {
            "examined": self.examined,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }


def _is_canonical(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def migrate_duration_fields(db: Session, *, dry_run: bool = False) -> MaintenanceReport:
    """
    Convert every pre-version-2 equipment row to canonical integer days.

    Pointer references win when their catalog entry exists; legacy
    ``{type, count}`` pairs are matched to the field's catalog options;
    anything else gets the field default.
    """
    report = MaintenanceReport()
    lookup = catalog_lookup(db)
    targets: Dict[str, Optional[CatalogEntry]] = {
        attr: get_catalog_entry(db, name) for attr, (name, _) in DURATION_FIELDS.items()
    }

    rows = db.execute(select(Equipment).order_by(Equipment.id)).scalars().all()
    for eq in rows:
        report.examined += 1
        current = [getattr(eq, attr) for attr in DURATION_FIELDS]
        if eq.duration_schema_version >= DURATION_SCHEMA_VERSION and all(_is_canonical(v) for v in current):
            report.skipped += 1
            continue

        try:
            values = {
                attr: canonical_days(resolve(getattr(eq, attr), lookup, default, target=targets[attr]))
                for attr, (_, default) in DURATION_FIELDS.items()
            }
        except Exception:
            logger.exception("Duration migration failed for equipment %s (%s)", eq.id, eq.name)
            report.errors += 1
            continue

        logger.info(
            "Equipment %s (%s): notice=%s, min=%s, max=%s",
            eq.id, eq.name, values["notice_period"], values["minimum_trip_duration"],
            values["maximum_trip_duration"],
        )
        report.updated += 1
        if dry_run:
            continue
        for attr, value in values.items():
            setattr(eq, attr, value)
        eq.duration_schema_version = DURATION_SCHEMA_VERSION

    if dry_run:
        db.rollback()
    else:
        db.commit()
    logger.info(
        "Duration migration%s: updated %d of %d (skipped %d, errors %d)",
        " (dry run)" if dry_run else "", report.updated, report.examined, report.skipped, report.errors,
    )
    return report


def _locations(db: Session):
    for eq in db.execute(select(Equipment).order_by(Equipment.id)).scalars().all():
        if eq.location:
            yield eq, geo.GeoPoint.from_document(eq.location)


def backfill_location_coordinates(db: Session) -> MaintenanceReport:
    """Derive the GeoJSON point for rows that have lat/lng but no valid point."""
    report = MaintenanceReport()
    for eq, loc in _locations(db):
        if loc.lat is None or loc.lng is None:
            continue
        report.examined += 1
        if geo.has_valid_coordinates(loc):
            report.skipped += 1
            continue
        eq.location = {**eq.location, **geo.normalize(loc).to_document()}
        report.updated += 1
        logger.info("Backfilled point for equipment %s -> [%s, %s]", eq.id, loc.lng, loc.lat)
    db.commit()
    logger.info("Coordinate backfill: updated %d of %d", report.updated, report.examined)
    return report


def fix_coordinate_order(db: Session) -> MaintenanceReport:
    """Rewrite points stored as ``[lat, lng]`` to GeoJSON ``[lng, lat]``."""
    report = MaintenanceReport()
    for eq, loc in _locations(db):
        if loc.lat is None or loc.lng is None or loc.coordinates is None:
            continue
        report.examined += 1
        if not geo.is_wrong_ordered(loc):
            report.skipped += 1
            continue
        # lat == lng reads as wrong-ordered but is already correct
        if loc.lat == loc.lng:
            report.skipped += 1
            continue
        eq.location = {**eq.location, **geo.repair(loc).to_document()}
        report.updated += 1
        logger.info("Fixed coordinate order for equipment %s -> [lng=%s, lat=%s]", eq.id, loc.lng, loc.lat)
    db.commit()
    logger.info("Coordinate order fix: corrected %d of %d", report.updated, report.examined)
    return report
