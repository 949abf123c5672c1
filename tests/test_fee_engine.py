from decimal import Decimal

import pytest

from rental_pricing.rules.fee_engine import (
    DurationFactorMode,
    FeeEngine,
    PercentageSettings,
    SettingsUnavailable,
    calculate,
    insurance_duration_factor,
)


def _settings(**overrides) -> PercentageSettings:
    values = dict(
        admin_fee_percentage=Decimal("10"),
        insurance_percentage=Decimal("8"),
        daily_insurance_multiplier=Decimal("0"),
        deposit_percentage=Decimal("20"),
        tax_percentage=Decimal("13"),
        stripe_fee_percentage=Decimal("2.9"),
    )
    values.update({k: (Decimal(str(v)) if v is not None else None) for k, v in overrides.items()})
    return PercentageSettings(**values)


def test_deposit_breakdown_matches_worked_example():
    b = calculate(100, False, 2, 1000, _settings())

    assert b.rental_fee == Decimal("100.00")
    assert b.platform_fee == Decimal("10.00")
    assert b.tax_amount == Decimal("14.30")
    assert b.deposit_amount == Decimal("200.00")
    assert b.insurance_amount == Decimal("0.00")
    assert b.subtotal == Decimal("310.00")
    assert b.total_amount == Decimal("324.30")


def test_insurance_uses_equipment_value_and_duration_factor():
    b = calculate(100, True, 5, 1000, _settings())

    assert b.insurance_amount == Decimal("80.80")
    assert b.deposit_amount == Decimal("0.00")
    assert b.subtotal == Decimal("190.80")
    assert b.total_amount == Decimal("205.10")


@pytest.mark.parametrize(
    "days, expected",
    [
        (1, Decimal("1")),
        (3, Decimal("1")),
        (4, Decimal("1.005")),
        (5, Decimal("1.01")),
        (9, Decimal("1.03")),
        (100, Decimal("1.03")),
    ],
)
def test_stepped_duration_factor(days, expected):
    assert insurance_duration_factor(days) == expected


def test_daily_multiplier_mode_uses_settings_field():
    engine = FeeEngine(
        _settings(daily_insurance_multiplier="0.01"),
        duration_factor_mode=DurationFactorMode.DAILY_MULTIPLIER,
    )

    assert engine.duration_factor(5) == Decimal("1.05")
    b = engine.calculate(100, True, 5, 1000)
    assert b.insurance_amount == Decimal("84.00")


def test_missing_insurance_percentage_falls_back_to_one_percent():
    b = calculate(0, True, 2, 1000, _settings(insurance_percentage=None))

    assert b.insurance_amount == Decimal("10.00")


def test_tax_uses_rounded_platform_fee():
    # 33.33 * 10% = 3.333 -> 3.33; tax 13% of 36.66 = 4.7658 -> 4.77
    b = calculate("33.33", False, 1, 0, _settings())

    assert b.platform_fee == Decimal("3.33")
    assert b.tax_amount == Decimal("4.77")
    assert b.total_amount == b.subtotal + b.tax_amount


def test_components_sum_to_total():
    b = calculate("123.45", True, 7, "2499.99", _settings(admin_fee_percentage="12.5", tax_percentage="8.25"))

    assert b.subtotal == b.rental_fee + b.platform_fee + b.insurance_amount + b.deposit_amount
    assert b.total_amount == b.subtotal + b.tax_amount


def test_increasing_admin_fee_increases_fees_and_total():
    previous = None
    for pct in range(0, 60, 5):
        b = calculate(100, False, 2, 1000, _settings(admin_fee_percentage=pct))
        if previous is not None:
            assert b.platform_fee > previous.platform_fee
            assert b.tax_amount > previous.tax_amount
            assert b.total_amount > previous.total_amount
        previous = b


def test_missing_settings_raise_instead_of_defaulting():
    with pytest.raises(SettingsUnavailable):
        calculate(100, False, 2, 1000, None)


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(rental_fee=-1, rental_days=1, equipment_value=0),
        dict(rental_fee=1, rental_days=0, equipment_value=0),
        dict(rental_fee=1, rental_days=1, equipment_value=-5),
    ],
)
def test_invalid_inputs_are_rejected(kwargs):
    with pytest.raises(ValueError):
        calculate(kwargs["rental_fee"], False, kwargs["rental_days"], kwargs["equipment_value"], _settings())


def test_as_dict_serializes_amounts_as_strings():
    payload = calculate(100, False, 2, 1000, _settings()).as_dict()

    assert payload["total_amount"] == "324.30"
    assert set(payload) == {
        "rental_fee", "platform_fee", "tax_amount", "insurance_amount",
        "deposit_amount", "total_amount", "subtotal",
    }
