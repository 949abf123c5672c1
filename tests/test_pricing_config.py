from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from rental_pricing.db import seed_duration_catalog
from rental_pricing.models import PercentageSetting
from rental_pricing.rules import pricing_config
from rental_pricing.rules.duration import resolve
from rental_pricing.rules.fee_engine import SettingsUnavailable, calculate
from rental_pricing.rules.pricing_config import (
    InvalidCatalogName,
    InvalidCatalogOption,
    InvalidCatalogUnit,
    InvalidPercentage,
    catalog_lookup,
    get_catalog_entry,
    get_catalog_entry_by_id,
    get_settings,
    list_catalog_entries,
    load_percentage_settings,
    upsert_catalog_entries,
    upsert_settings,
)


def _entry(name="minimum-duration", unit="days", options=None):
    return {
        "name": name,
        "unit": unit,
        "options": options
        if options is not None
        else [{"label": "1 Day", "value": 1, "recommended": True}],
    }


def test_get_settings_returns_none_when_empty(db):
    assert get_settings(db) is None
    with pytest.raises(SettingsUnavailable):
        load_percentage_settings(db)


def test_first_upsert_applies_defaults(db):
    row = upsert_settings(db, {"taxPercentage": 15})

    assert row.tax_percentage == Decimal("15")
    assert row.admin_fee_percentage == Decimal("10")
    assert row.insurance_percentage == Decimal("7")
    assert row.deposit_percentage == Decimal("20")


def test_upsert_merges_and_keeps_single_record(db):
    upsert_settings(db, {"admin_fee_percentage": 12, "tax_percentage": 13})
    upsert_settings(db, {"depositPercentage": "25.5"})

    pct = load_percentage_settings(db)
    assert pct.admin_fee_percentage == Decimal("12")
    assert pct.deposit_percentage == Decimal("25.5")
    assert pct.tax_percentage == Decimal("13")
    assert len(db.execute(select(PercentageSetting)).scalars().all()) == 1


@pytest.mark.parametrize(
    "partial",
    [
        {"adminFeePercentage": 101},
        {"taxPercentage": -1},
        {"dailyInsuranceMultiplier": -0.5},
        {"depositPercentage": "lots"},
        {"unknownPercentage": 5},
    ],
)
def test_upsert_rejects_out_of_bound_values_without_writing(db, partial):
    with pytest.raises(InvalidPercentage):
        upsert_settings(db, partial)
    assert get_settings(db) is None


def test_loaded_settings_price_an_order(db):
    upsert_settings(db, {"adminFeePercentage": 10, "taxPercentage": 13, "depositPercentage": 20, "insurancePercentage": 8})

    b = calculate(100, False, 2, 1000, load_percentage_settings(db))
    assert b.total_amount == Decimal("324.30")


def test_catalog_upsert_and_read(db):
    written = upsert_catalog_entries(
        db,
        [
            _entry("advanceNotice", "hours", [{"label": "5 Hours", "value": 5, "recommended": True}]),
            _entry("maximum-duration", "weeks", [{"label": "1 Week", "value": 1, "recommended": False}]),
        ],
    )

    assert [e.name for e in written] == ["advance-notice", "maximum-duration"]
    entry = get_catalog_entry(db, "advance-notice")
    assert entry.unit == "hours"
    assert entry.singular_unit == "hour"
    assert entry.options[0].label == "5 Hours"
    assert get_catalog_entry_by_id(db, entry.id) == entry
    assert get_catalog_entry(db, "minimum-duration") is None
    assert get_catalog_entry_by_id(db, "not-an-id") is None


def test_catalog_upsert_replaces_existing_entry(db):
    upsert_catalog_entries(db, [_entry()])
    upsert_catalog_entries(db, [_entry(options=[{"label": "2 Days", "value": 2, "recommended": False}])])

    entries = list_catalog_entries(db)
    assert len(entries) == 1
    assert [o.value for o in entries[0].options] == [2]


@pytest.mark.parametrize(
    "bad, error",
    [
        (_entry(name="rentalWindow"), InvalidCatalogName),
        (_entry(unit="fortnights"), InvalidCatalogUnit),
        (_entry(options=[{"label": "1 Day", "value": 1}]), InvalidCatalogOption),
        (_entry(options=[{"label": "", "value": 1, "recommended": True}]), InvalidCatalogOption),
        (_entry(options=[{"label": "x", "value": "1", "recommended": True}]), InvalidCatalogOption),
        (_entry(options="1 Day"), InvalidCatalogOption),
    ],
)
def test_catalog_validation_errors(db, bad, error):
    with pytest.raises(error):
        upsert_catalog_entries(db, [bad])


def test_failed_entry_keeps_earlier_entries_and_its_own_prior_state(db):
    upsert_catalog_entries(db, [_entry("maximum-duration", "days", [{"label": "7 Days", "value": 7, "recommended": True}])])

    with pytest.raises(InvalidCatalogUnit):
        upsert_catalog_entries(
            db,
            [
                _entry("advance-notice", "days", [{"label": "Same Day", "value": 0, "recommended": True}]),
                _entry("maximum-duration", "years", [{"label": "1 Year", "value": 1, "recommended": False}]),
            ],
        )

    db.rollback()
    assert get_catalog_entry(db, "advance-notice").options[0].label == "Same Day"
    maximum = get_catalog_entry(db, "maximum-duration")
    assert maximum.unit == "days"
    assert [o.value for o in maximum.options] == [7]


def test_seed_duration_catalog_is_idempotent(db):
    assert seed_duration_catalog(db) == 3
    assert seed_duration_catalog(db) == 0

    notice = get_catalog_entry(db, "advance-notice")
    assert notice.options[0].value == 0
    assert any(o.recommended and o.value == 7 for o in get_catalog_entry(db, "maximum-duration").options)


def test_catalog_lookup_treats_storage_errors_as_missing(db, monkeypatch):
    def unavailable(_db, _dropdown_id):
        raise OperationalError("SELECT equipment_dropdowns", {}, Exception("connection lost"))

    monkeypatch.setattr(pricing_config, "get_catalog_entry_by_id", unavailable)
    lookup = catalog_lookup(db)

    assert lookup(1) is None
    assert resolve({"dropdownId": 1, "selectedValue": 3}, lookup, 5).count == 5
