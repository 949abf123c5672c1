"""
Operator commands for the rental pricing core.

    rental-pricing init-db
    rental-pricing migrate-durations --dry-run
    rental-pricing quote 100 --days 5 --value 1000 --insurance
"""

import logging
from decimal import Decimal

import click

from .db import SessionLocal, init_db, seed_duration_catalog
from .maintenance import backfill_location_coordinates, fix_coordinate_order, migrate_duration_fields
from .rules.fee_engine import DurationFactorMode, FeeEngine, SettingsUnavailable
from .rules.pricing_config import load_percentage_settings
from .settings import settings

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


def _report(title, report):
    click.echo(f"{title}: updated {report.updated} of {report.examined} (skipped {report.skipped}, errors {report.errors})")


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """Rental pricing maintenance and diagnostics."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@cli.command(name="init-db")
def init_db_command():
    """Create tables and seed the default duration catalog."""
    init_db()
    click.echo("Database initialized.")


@cli.command(name="seed-dropdowns")
@click.option("--overwrite", is_flag=True, help="Replace existing dropdown entries with the defaults")
def seed_dropdowns(overwrite):
    """Write the default days-only duration catalog."""
    with SessionLocal() as db:
        count = seed_duration_catalog(db, overwrite=overwrite)
    click.echo(f"Seeded {count} dropdown entries.")


@cli.command(name="migrate-durations")
@click.option("--dry-run", is_flag=True, help="Report changes without writing them")
def migrate_durations(dry_run):
    """Convert equipment duration fields to canonical days."""
    with SessionLocal() as db:
        report = migrate_duration_fields(db, dry_run=dry_run)
    _report("Duration migration" + (" (dry run)" if dry_run else ""), report)


@cli.command(name="backfill-coordinates")
def backfill_coordinates():
    """Derive missing GeoJSON points from lat/lng."""
    with SessionLocal() as db:
        report = backfill_location_coordinates(db)
    _report("Coordinate backfill", report)


@cli.command(name="fix-coordinate-order")
def fix_coordinate_order_command():
    """Rewrite [lat, lng] points to GeoJSON [lng, lat]."""
    with SessionLocal() as db:
        report = fix_coordinate_order(db)
    _report("Coordinate order fix", report)


@cli.command(name="show-settings")
def show_settings():
    """Print the live percentage settings."""
    with SessionLocal() as db:
        try:
            pct = load_percentage_settings(db)
        except SettingsUnavailable as e:
            raise click.ClickException(str(e))
    for key, value in pct.as_dict().items():
        click.echo(f"{key}: {value}")


@cli.command(name="quote")
@click.argument("rental_fee", type=click.FLOAT)
@click.option("--days", "rental_days", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--value", "equipment_value", type=click.FLOAT, default=0.0, show_default=True,
              help="Equipment value used for insurance/deposit")
@click.option("--insurance", is_flag=True, help="Price with insurance instead of a deposit")
def quote(rental_fee, rental_days, equipment_value, insurance):
    """Print the fee breakdown for a rental."""
    with SessionLocal() as db:
        try:
            pct = load_percentage_settings(db)
        except SettingsUnavailable as e:
            raise click.ClickException(str(e))
    engine = FeeEngine(pct, duration_factor_mode=DurationFactorMode(settings.insurance_duration_factor_mode))
    breakdown = engine.calculate(Decimal(str(rental_fee)), insurance, rental_days, Decimal(str(equipment_value)))
    for key, value in breakdown.as_dict().items():
        click.echo(f"{key:>17}: {value}")


def main():
    cli()


if __name__ == "__main__":
    main()
