"""Search filter parsing and predicate compilation for discovery.

Raw query parameters arrive as strings: comma-separated tokens for
multi-valued fields and dash-joined ``"min-max"`` ranges. ``parse_filters``
turns them into a validated ``SearchFilters`` and ``compile_predicates``
turns that into an ordered ``PredicateSet``. Predicates are plain data with a
``kind`` tag so a store can render them natively, and each one can also be
evaluated against a row dict via ``matches``.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import ClassVar

from geomatch.utils.errors import InvalidInputError

ACTIVE_STATUS = "ACTIVE"

_INT_RANGE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")
_NUMBER_RANGE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*-\s*(\d+(?:\.\d+)?)\s*$")


# ============================================================
# FILTERS
# ============================================================
@dataclass(frozen=True)
class SearchFilters:
    """Validated discovery filters. Empty tuples mean "no constraint"."""

    genders: tuple[str, ...] = ()
    age_range: tuple[int, int] | None = None
    interests: tuple[str, ...] = ()
    latitude: float | None = None
    longitude: float | None = None
    radius_range: tuple[float, float] | None = None

    @property
    def has_point(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def _first(raw: Mapping[str, object], *keys: str) -> object | None:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def parse_tokens(value: object | None) -> tuple[str, ...]:
    """Split a comma-separated string (or list of strings) into tokens."""

    if value is None:
        return ()
    if isinstance(value, str):
        parts: Iterable[object] = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        parts = value
    else:
        raise InvalidInputError(f"Expected comma-separated text, got {value!r}")

    tokens = []
    for part in parts:
        token = str(part).strip()
        if token and token not in tokens:
            tokens.append(token)
    return tuple(tokens)


def parse_age_range(value: object) -> tuple[int, int]:
    """Parse ``"min-max"`` into an inclusive integer age range."""

    if isinstance(value, (list, tuple)) and len(value) == 2:
        value = f"{value[0]}-{value[1]}"

    match = _INT_RANGE.match(str(value))
    if not match:
        raise InvalidInputError(
            f"ageRange must look like 'min-max' with whole numbers, got {value!r}"
        )

    min_age, max_age = int(match.group(1)), int(match.group(2))
    if min_age > max_age:
        raise InvalidInputError(f"ageRange minimum exceeds maximum: {value!r}")
    return min_age, max_age


def parse_radius_range(value: object) -> tuple[float, float]:
    """Parse ``"min-max"`` kilometers into an inclusive distance band."""

    if isinstance(value, (list, tuple)) and len(value) == 2:
        value = f"{value[0]}-{value[1]}"

    match = _NUMBER_RANGE.match(str(value))
    if not match:
        raise InvalidInputError(
            f"radiusRange must look like 'min-max' in kilometers, got {value!r}"
        )

    min_km, max_km = float(match.group(1)), float(match.group(2))
    if min_km > max_km:
        raise InvalidInputError(f"radiusRange minimum exceeds maximum: {value!r}")
    return min_km, max_km


def _parse_number(name: str, value: object) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"{name} must be numeric, got {value!r}") from exc
    if not math.isfinite(number):
        raise InvalidInputError(f"{name} must be finite, got {value!r}")
    return number


def parse_filters(raw: Mapping[str, object] | None) -> SearchFilters:
    """Validate raw discovery parameters into ``SearchFilters``.

    Accepts both the query-string spellings (``ageRange``, ``radiusRange``)
    and snake_case keys. A bare ``radius`` means ``0-radius``.

    Raises:
        InvalidInputError: If any value is malformed.
    """

    raw = raw or {}

    age_value = _first(raw, "ageRange", "age_range")
    age_range = parse_age_range(age_value) if age_value is not None else None

    radius_range = None
    radius_value = _first(raw, "radiusRange", "radius_range")
    if radius_value is not None:
        radius_range = parse_radius_range(radius_value)
    else:
        single = _first(raw, "radius")
        if single is not None:
            max_km = _parse_number("radius", single)
            if max_km < 0:
                raise InvalidInputError(f"radius must not be negative, got {single!r}")
            radius_range = (0.0, max_km)

    lat_value = _first(raw, "latitude", "lat")
    lng_value = _first(raw, "longitude", "lng", "lon")
    if (lat_value is None) != (lng_value is None):
        raise InvalidInputError("latitude and longitude must be supplied together")

    latitude = longitude = None
    if lat_value is not None:
        latitude = _parse_number("latitude", lat_value)
        longitude = _parse_number("longitude", lng_value)
        if not -90.0 <= latitude <= 90.0:
            raise InvalidInputError(f"latitude out of range: {latitude}")
        if not -180.0 <= longitude <= 180.0:
            raise InvalidInputError(f"longitude out of range: {longitude}")

    return SearchFilters(
        genders=parse_tokens(_first(raw, "gender", "genders")),
        age_range=age_range,
        interests=parse_tokens(_first(raw, "interests")),
        latitude=latitude,
        longitude=longitude,
        radius_range=radius_range,
    )


# ============================================================
# PREDICATES
# ============================================================
def parse_date(value: object) -> date | None:
    """Coerce a stored date_of_birth (date, datetime or ISO text) to a date."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def interests_blob(value: object) -> str:
    """Serialize stored interests the same way they are persisted."""

    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(list(value), ensure_ascii=False)


@dataclass(frozen=True)
class ExcludeIdsPredicate:
    kind: ClassVar[str] = "exclude_ids"
    ids: frozenset[str]

    def matches(self, row: Mapping[str, object]) -> bool:
        return str(row.get("id")) not in self.ids


@dataclass(frozen=True)
class StatusPredicate:
    kind: ClassVar[str] = "status"
    status: str = ACTIVE_STATUS

    def matches(self, row: Mapping[str, object]) -> bool:
        return row.get("status", ACTIVE_STATUS) == self.status


@dataclass(frozen=True)
class GenderPredicate:
    kind: ClassVar[str] = "gender"
    tokens: tuple[str, ...]

    def matches(self, row: Mapping[str, object]) -> bool:
        gender = row.get("gender") or ""
        return any(token in str(gender) for token in self.tokens)


@dataclass(frozen=True)
class AgePredicate:
    """Inclusive date_of_birth window derived from an age range."""

    kind: ClassVar[str] = "age"
    earliest_dob: date
    latest_dob: date

    def matches(self, row: Mapping[str, object]) -> bool:
        dob = parse_date(row.get("date_of_birth"))
        return dob is not None and self.earliest_dob <= dob <= self.latest_dob


@dataclass(frozen=True)
class InterestPredicate:
    kind: ClassVar[str] = "interests"
    tokens: tuple[str, ...]

    def matches(self, row: Mapping[str, object]) -> bool:
        blob = interests_blob(row.get("interests"))
        return any(token in blob for token in self.tokens)


Predicate = (
    ExcludeIdsPredicate
    | StatusPredicate
    | GenderPredicate
    | AgePredicate
    | InterestPredicate
)


@dataclass(frozen=True)
class PredicateSet:
    """Ordered predicates, conjoined when evaluated."""

    predicates: tuple[Predicate, ...]

    def matches(self, row: Mapping[str, object]) -> bool:
        return all(predicate.matches(row) for predicate in self.predicates)

    def of_kind(self, kind: str) -> Predicate | None:
        for predicate in self.predicates:
            if predicate.kind == kind:
                return predicate
        return None

    @property
    def kinds(self) -> list[str]:
        return [predicate.kind for predicate in self.predicates]


def years_before(day: date, years: int) -> date:
    """Shift ``day`` back by whole years; Feb 29 falls back to Feb 28."""

    try:
        return day.replace(year=day.year - years)
    except ValueError:
        return day.replace(year=day.year - years, day=28)


def compile_predicates(
    requester_id: str,
    excluded_ids: Iterable[str],
    filters: SearchFilters,
    today: date | None = None,
) -> PredicateSet:
    """Compile filters into the ordered predicate set for a store fetch.

    The requester is always added to the exclusion predicate. Filter
    categories that are empty contribute no predicate at all.
    """

    today = today or date.today()
    ids = frozenset(str(uid) for uid in excluded_ids) | {str(requester_id)}

    predicates: list[Predicate] = [
        ExcludeIdsPredicate(ids=ids),
        StatusPredicate(),
    ]

    if filters.genders:
        predicates.append(GenderPredicate(tokens=filters.genders))

    if filters.age_range is not None:
        min_age, max_age = filters.age_range
        predicates.append(
            AgePredicate(
                earliest_dob=years_before(today, max_age),
                latest_dob=years_before(today, min_age),
            )
        )

    if filters.interests:
        predicates.append(InterestPredicate(tokens=filters.interests))

    return PredicateSet(predicates=tuple(predicates))
