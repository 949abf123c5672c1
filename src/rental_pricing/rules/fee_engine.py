# src/rental_pricing/rules/fee_engine.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class SettingsUnavailable(LookupError):
    """Raised when no percentage settings record exists; orders must not be priced."""

    def __str__(self) -> str:
        return "percentage settings not found; pricing unavailable"


# -------------------------------
# Helpers & common data models
# -------------------------------

def _money(x: Decimal | int | float | str) -> Decimal:
    if not isinstance(x, Decimal):
        x = Decimal(str(x))
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _dec(x: Decimal | int | float | str) -> Decimal:
    return x if isinstance(x, Decimal) else Decimal(str(x))


class DurationFactorMode(Enum):
    STEPPED = "stepped"
    DAILY_MULTIPLIER = "daily_multiplier"


@dataclass(frozen=True)
class PercentageSettings:
    """Snapshot of the live percentage settings, passed into the engine explicitly."""

    admin_fee_percentage: Decimal
    insurance_percentage: Optional[Decimal]
    daily_insurance_multiplier: Decimal
    deposit_percentage: Decimal
    tax_percentage: Decimal
    stripe_fee_percentage: Decimal

    @classmethod
    def from_record(cls, row: Any) -> "PercentageSettings":
        insurance = getattr(row, "insurance_percentage", None)
        return cls(
            admin_fee_percentage=_dec(row.admin_fee_percentage),
            insurance_percentage=_dec(insurance) if insurance is not None else None,
            daily_insurance_multiplier=_dec(row.daily_insurance_multiplier or 0),
            deposit_percentage=_dec(row.deposit_percentage),
            tax_percentage=_dec(row.tax_percentage),
            stripe_fee_percentage=_dec(row.stripe_fee_percentage),
        )

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {
            "adminFeePercentage": str(self.admin_fee_percentage),
            "insurancePercentage": (
                str(self.insurance_percentage) if self.insurance_percentage is not None else None
            ),
            "dailyInsuranceMultiplier": str(self.daily_insurance_multiplier),
            "depositPercentage": str(self.deposit_percentage),
            "taxPercentage": str(self.tax_percentage),
            "stripeFeePercentage": str(self.stripe_fee_percentage),
        }


@dataclass(frozen=True)
class FeeBreakdown:
    rental_fee: Decimal
    platform_fee: Decimal
    tax_amount: Decimal
    insurance_amount: Decimal
    deposit_amount: Decimal
    total_amount: Decimal
    subtotal: Decimal

    def as_dict(self) -> Dict[str, str]:
        return {
            "rental_fee": str(self.rental_fee),
            "platform_fee": str(self.platform_fee),
            "tax_amount": str(self.tax_amount),
            "insurance_amount": str(self.insurance_amount),
            "deposit_amount": str(self.deposit_amount),
            "total_amount": str(self.total_amount),
            "subtotal": str(self.subtotal),
        }


# Fallback risk rate (percent) when insurancePercentage is not configured
DEFAULT_RISK_RATE = Decimal("1")

# Stepped duration factor: +0.5 pp per day beyond day 3, capped at +3 pp
FREE_INSURANCE_DAYS = 3
SURCHARGE_PP_PER_DAY = Decimal("0.5")
SURCHARGE_PP_CAP = Decimal("3")


def insurance_duration_factor(
    rental_days: int,
    *,
    mode: DurationFactorMode = DurationFactorMode.STEPPED,
    daily_multiplier: Decimal | int | float | str = Decimal("0"),
) -> Decimal:
    """
    Multiplier applied to the insurance premium for longer rentals.

    STEPPED:           df(d) = 1 for d <= 3, else 1 + min(3, (d - 3) * 0.5) / 100
    DAILY_MULTIPLIER:  df(d) = 1 + d * dailyInsuranceMultiplier
    """
    if mode is DurationFactorMode.DAILY_MULTIPLIER:
        return Decimal("1") + Decimal(rental_days) * _dec(daily_multiplier)

    if rental_days <= FREE_INSURANCE_DAYS:
        return Decimal("1")
    surcharge = min(SURCHARGE_PP_CAP, Decimal(rental_days - FREE_INSURANCE_DAYS) * SURCHARGE_PP_PER_DAY)
    return Decimal("1") + surcharge / Decimal("100")


class FeeEngine:
    """
    Turns a rental's base price, duration and the admin percentages into an
    itemized, cent-rounded charge breakdown.

    The engine never reads storage: callers load a :class:`PercentageSettings`
    snapshot (see ``pricing_config.load_percentage_settings``) and pass it in.
    """

    def __init__(
        self,
        settings: Optional[PercentageSettings],
        *,
        duration_factor_mode: DurationFactorMode = DurationFactorMode.STEPPED,
    ):
        self.settings = settings
        self.duration_factor_mode = duration_factor_mode

    def duration_factor(self, rental_days: int) -> Decimal:
        daily = self.settings.daily_insurance_multiplier if self.settings else Decimal("0")
        return insurance_duration_factor(
            rental_days, mode=self.duration_factor_mode, daily_multiplier=daily
        )

    def calculate(
        self,
        rental_fee: Decimal | int | float | str,
        is_insurance: bool,
        rental_days: int,
        equipment_value: Decimal | int | float | str,
    ) -> FeeBreakdown:
        settings = self.settings
        if settings is None:
            logger.warning("Fee calculation requested with no percentage settings on record")
            raise SettingsUnavailable()

        fee = _dec(rental_fee)
        value = _dec(equipment_value)
        if fee < 0:
            raise ValueError("rental_fee must be >= 0")
        if value < 0:
            raise ValueError("equipment_value must be >= 0")
        if isinstance(rental_days, bool) or int(rental_days) != rental_days or rental_days < 1:
            raise ValueError("rental_days must be an integer >= 1")
        rental_days = int(rental_days)

        # 1) Platform fee (rounded before it feeds tax)
        rounded_platform_fee = _money(fee * settings.admin_fee_percentage / Decimal("100"))

        # 2) Tax on rental + platform fee
        taxable_amount = fee + rounded_platform_fee
        tax_amount = taxable_amount * settings.tax_percentage / Decimal("100")

        # 3) Risk rate
        rr = settings.insurance_percentage
        if rr is None:
            rr = DEFAULT_RISK_RATE

        # 4-5) Insurance or deposit
        if is_insurance:
            insurance_amount = value * (rr / Decimal("100")) * self.duration_factor(rental_days)
            deposit_amount = Decimal("0")
        else:
            deposit_amount = value * settings.deposit_percentage / Decimal("100")
            insurance_amount = Decimal("0")

        # 6) Round every component independently
        rounded_rental_fee = _money(fee)
        rounded_tax_amount = _money(tax_amount)
        rounded_insurance_amount = _money(insurance_amount)
        rounded_deposit_amount = _money(deposit_amount)

        # 7-8) Subtotal excludes tax; total adds it back
        subtotal = (
            rounded_rental_fee
            + rounded_platform_fee
            + rounded_insurance_amount
            + rounded_deposit_amount
        )
        total_amount = subtotal + rounded_tax_amount

        return FeeBreakdown(
            rental_fee=rounded_rental_fee,
            platform_fee=rounded_platform_fee,
            tax_amount=rounded_tax_amount,
            insurance_amount=rounded_insurance_amount,
            deposit_amount=rounded_deposit_amount,
            total_amount=_money(total_amount),
            subtotal=_money(subtotal),
        )


def calculate(
    rental_fee: Decimal | int | float | str,
    is_insurance: bool,
    rental_days: int,
    equipment_value: Decimal | int | float | str,
    settings: Optional[PercentageSettings],
    *,
    duration_factor_mode: DurationFactorMode = DurationFactorMode.STEPPED,
) -> FeeBreakdown:
    return FeeEngine(settings, duration_factor_mode=duration_factor_mode).calculate(
        rental_fee, is_insurance, rental_days, equipment_value
    )
