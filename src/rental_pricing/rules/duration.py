"""
Duration references and their resolution against the duration catalog.

Equipment records carry three duration fields (advance notice, minimum and
maximum rental duration). Depending on when a record was written, each field
holds one of:

  - a plain non-negative integer, in days (canonical, post-migration),
  - a legacy ``{"type": <unit>, "count": <n>}`` pair,
  - a ``{"dropdownId": <catalog id>, "selectedValue": <n>}`` pointer, which
    may also still carry the legacy pair it was converted from.

:func:`parse_duration_reference` maps a stored value onto one variant;
:func:`resolve` turns any variant into a concrete ``(type, count, label)``.
Resolution never raises: anything unresolvable degrades to the caller's
default.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

# Fixed conversions: 1 day = 24 hours, 1 week = 7 days, 1 month = 30 days
HOURS_PER_UNIT = {
    "hour": Decimal("1"),
    "day": Decimal("24"),
    "week": Decimal("168"),
    "month": Decimal("720"),
}


@dataclass(frozen=True)
class DurationOption:
    label: str
    value: int
    recommended: bool = False


@dataclass(frozen=True)
class CatalogEntry:
    id: Any
    name: str
    unit: str
    options: Tuple[DurationOption, ...] = ()

    @property
    def singular_unit(self) -> str:
        return singular_unit(self.unit)

    def option_for(self, value: int) -> Optional[DurationOption]:
        return next((o for o in self.options if o.value == value), None)


# ---------- Reference variants ----------

@dataclass(frozen=True)
class CanonicalDuration:
    days: int


@dataclass(frozen=True)
class LegacyDuration:
    type: str
    count: Optional[int]


@dataclass(frozen=True)
class CatalogDuration:
    dropdown_id: Any
    selected_value: Optional[int]
    legacy: Optional[LegacyDuration] = None


@dataclass(frozen=True)
class MissingDuration:
    raw: Any = field(default=None, compare=False)


DurationReference = Union[CanonicalDuration, LegacyDuration, CatalogDuration, MissingDuration]
_VARIANTS = (CanonicalDuration, LegacyDuration, CatalogDuration, MissingDuration)


@dataclass(frozen=True)
class ResolvedDuration:
    type: str
    count: int
    label: str

    def as_dict(self) -> dict:
        return {"type": self.type, "count": self.count, "label": self.label}


CatalogLookup = Callable[[Any], Optional[CatalogEntry]]


# ---------- Parsing ----------

def singular_unit(unit: Optional[str]) -> str:
    txt = (unit or "").strip().lower()
    return txt[:-1] if txt.endswith("s") else txt


def _as_count(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        number = Decimal(str(value))
    except (ArithmeticError, ValueError):
        return None
    if not number.is_finite() or number != number.to_integral_value():
        return None
    return int(number)


def parse_duration_reference(raw: Any) -> DurationReference:
    """Classify a stored duration value into exactly one reference variant."""
    if isinstance(raw, _VARIANTS):
        return raw
    if raw is None or isinstance(raw, bool):
        return MissingDuration(raw)
    if isinstance(raw, (int, float, Decimal)):
        days = _as_count(raw)
        if days is None or days < 0:
            return MissingDuration(raw)
        return CanonicalDuration(days)
    if isinstance(raw, Mapping):
        legacy: Optional[LegacyDuration] = None
        if raw.get("type") is not None or raw.get("count") is not None:
            legacy = LegacyDuration(type=str(raw.get("type") or ""), count=_as_count(raw.get("count")))
        dropdown_id = raw.get("dropdownId", raw.get("dropdown_id"))
        if dropdown_id is not None:
            selected = raw.get("selectedValue", raw.get("selected_value"))
            return CatalogDuration(dropdown_id=dropdown_id, selected_value=_as_count(selected), legacy=legacy)
        if legacy is not None:
            return legacy
    return MissingDuration(raw)


# ---------- Resolution ----------

def convert_count(count: int | Decimal, from_unit: str, to_unit: str) -> Decimal:
    """Convert between hour/day/week/month; unknown units are left unconverted."""
    src = HOURS_PER_UNIT.get(singular_unit(from_unit))
    dst = HOURS_PER_UNIT.get(singular_unit(to_unit))
    amount = Decimal(count)
    if src is None or dst is None or src == dst:
        return amount
    return amount * src / dst


def closest_option(entry: CatalogEntry, target: Decimal) -> Optional[DurationOption]:
    """Exact match first; otherwise the nearest value, lowest index on a tie."""
    if not entry.options:
        return None
    for option in entry.options:
        if option.value == target:
            return option
    best_index = min(
        range(len(entry.options)),
        key=lambda i: (abs(Decimal(entry.options[i].value) - target), i),
    )
    return entry.options[best_index]


def _default(default_value: int, target: Optional[CatalogEntry]) -> ResolvedDuration:
    # default_value is in days
    untyped = ResolvedDuration(type="", count=default_value, label=f"{default_value} days")
    if target is None:
        return untyped
    converted = convert_count(default_value, "day", target.unit)
    if converted != converted.to_integral_value():
        return untyped
    count = int(converted)
    option = target.option_for(count)
    label = option.label if option else f"{count} {target.unit}"
    return ResolvedDuration(type=target.singular_unit, count=count, label=label)


def _resolve_legacy(ref: LegacyDuration, target: Optional[CatalogEntry]) -> Optional[ResolvedDuration]:
    # A legacy count of 0 was how "not set" was stored
    if ref.count is None or ref.count <= 0:
        return None
    if target is None:
        return ResolvedDuration(type=singular_unit(ref.type), count=ref.count, label=f"{ref.count} {ref.type or 'days'}")
    converted = convert_count(ref.count, ref.type, target.unit)
    option = closest_option(target, converted)
    if option is None:
        return None
    return ResolvedDuration(type=target.singular_unit, count=option.value, label=option.label)


def resolve(
    ref: Any,
    catalog_lookup: CatalogLookup,
    default_value: int,
    *,
    target: Optional[CatalogEntry] = None,
) -> ResolvedDuration:
    """
    Resolve a duration reference to ``(type, count, label)``.

    ``target`` is the catalog entry the field belongs to (e.g. the
    minimum-duration entry); legacy pairs are matched against its options and
    defaults are labelled from it.
    """
    variant = parse_duration_reference(ref)

    if isinstance(variant, CanonicalDuration):
        return ResolvedDuration(type="", count=variant.days, label=f"{variant.days} days")

    if isinstance(variant, CatalogDuration):
        entry = _safe_lookup(catalog_lookup, variant.dropdown_id)
        if entry is not None and variant.selected_value is not None and variant.selected_value >= 0:
            option = entry.option_for(variant.selected_value)
            label = option.label if option else f"{variant.selected_value} {entry.unit}"
            return ResolvedDuration(type=entry.singular_unit, count=variant.selected_value, label=label)
        if variant.legacy is not None:
            resolved = _resolve_legacy(variant.legacy, target or entry)
            if resolved is not None:
                return resolved
        logger.debug("Unresolvable catalog duration %r; using default %s", variant, default_value)
        return _default(default_value, target or entry)

    if isinstance(variant, LegacyDuration):
        resolved = _resolve_legacy(variant, target)
        if resolved is not None:
            return resolved
        logger.debug("Unresolvable legacy duration %r; using default %s", variant, default_value)
        return _default(default_value, target)

    logger.debug("Missing duration %r; using default %s", variant.raw, default_value)
    return _default(default_value, target)


def _safe_lookup(catalog_lookup: CatalogLookup, dropdown_id: Any) -> Optional[CatalogEntry]:
    try:
        return catalog_lookup(dropdown_id)
    except (LookupError, ValueError, TypeError):
        logger.debug("Catalog lookup failed for %r", dropdown_id, exc_info=True)
        return None


def canonical_days(resolved: ResolvedDuration) -> int:
    """Express a resolved duration in whole days (half-up); untyped counts are already days."""
    if not resolved.type:
        return resolved.count
    days = convert_count(resolved.count, resolved.type, "day")
    return int(days.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
