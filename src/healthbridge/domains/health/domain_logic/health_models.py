"""Value objects returned by the normalization and aggregation layer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any

from healthbridge.domains.health.domain_logic.errors import (
    InvalidQueryError,
    UnrecognizedBucketError,
)

BUCKET_WIDTHS = ("hour", "day", "week", "month", "year")


def as_aware(moment: datetime) -> datetime:
    """Attach the local zone to a naive datetime; naive input is local wall-clock."""
    if moment.tzinfo is None:
        return moment.astimezone()
    return moment


def parse_date(value: Any) -> datetime:
    """Coerce a native timestamp into a timezone-aware datetime.

    Accepts datetimes, dates, epoch milliseconds, ISO 8601 strings and the
    Apple Health export format ``'2025-12-01 08:30:00 -0500'``. Values
    without an offset are taken as local wall-clock time.
    """
    if isinstance(value, datetime):
        return as_aware(value)
    if isinstance(value, date):
        return as_aware(datetime.combine(value, time.min))
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        try:
            return datetime.strptime(value, "%Y-%m-%d %H:%M:%S %z")
        except ValueError:
            # fromisoformat only accepts a trailing Z from 3.11 onwards
            if value.endswith("Z"):
                value = value[:-1] + "+00:00"
            return as_aware(datetime.fromisoformat(value))
    raise ValueError(f"Unrecognized date value: {value!r}")


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QueryOptions:
    """Options for query and query_aggregated."""

    data_type: str
    start_date: datetime
    end_date: datetime
    unit: str | None = None
    bucket: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "start_date", as_aware(self.start_date))
        object.__setattr__(self, "end_date", as_aware(self.end_date))
        if self.start_date > self.end_date:
            raise InvalidQueryError(
                f"start_date {self.start_date.isoformat()} is after "
                f"end_date {self.end_date.isoformat()}"
            )
        if self.bucket is not None and self.bucket not in BUCKET_WIDTHS:
            raise UnrecognizedBucketError(self.bucket)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueryOptions:
        """Build options from a request dict (snake_case or camelCase keys)."""
        return cls(
            data_type=data.get("data_type") or data.get("dataType", ""),
            start_date=parse_date(data.get("start_date") or data.get("startDate")),
            end_date=parse_date(data.get("end_date") or data.get("endDate")),
            unit=data.get("unit") or None,
            bucket=data.get("bucket") or None,
        )


@dataclass(frozen=True)
class StoreRecord:
    """A sample to be written to, or deleted from, the native store."""

    data_type: str
    start_date: datetime
    end_date: datetime
    value: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)
    cycling: bool = False
    calories: float | None = None
    distance: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "start_date", as_aware(self.start_date))
        object.__setattr__(self, "end_date", as_aware(self.end_date))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoreRecord:
        return cls(
            data_type=data.get("data_type") or data.get("dataType", ""),
            start_date=parse_date(data.get("start_date") or data.get("startDate")),
            end_date=parse_date(data.get("end_date") or data.get("endDate")),
            value=data.get("value"),
            metadata=dict(data.get("metadata") or {}),
            cycling=bool(data.get("cycling", False)),
            calories=data.get("calories"),
            distance=data.get("distance"),
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SourceAttribution:
    """Source app and device that produced a sample. Missing fields are ''."""

    source_name: str = ""
    source_version: str = ""
    source_bundle_id: str = ""
    source_product_type: str = ""
    source_os_version: str = ""
    device_name: str = ""
    device_model: str = ""
    device_manufacturer: str = ""
    device_local_identifier: str = ""
    device_hardware_version: str = ""
    device_software_version: str = ""
    device_firmware_version: str = ""
    device_fda_udi: str = ""


@dataclass(frozen=True)
class HealthSample:
    """Uniform output record for a single native sample."""

    id: str
    start_date: datetime
    end_date: datetime
    value: Any = None
    unit: str | None = None
    measure_name: str = ""
    native_measure_name: str = ""
    result: str | None = None          # category label for coded category types
    source: SourceAttribution = field(default_factory=SourceAttribution)
    metadata: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class CorrelationSample(HealthSample):
    """A correlation (blood pressure, food) with its sub-values in ``value``."""


@dataclass(frozen=True)
class WorkoutSample(HealthSample):
    """A workout. ``value`` holds the activity label used when merging."""

    activity_name: str = ""
    native_activity_name: str = ""
    calories: int | None = None
    energy_unit: str | None = None
    distance: int | None = None
    distance_unit: str | None = None
    duration: Any = ""
    duration_unit: str = ""
    swim_stroke_value: int | None = None
    swim_stroke_unit: str | None = None
    flights_climbed_value: int | None = None
    flights_climbed_unit: str | None = None
    workout_events: list[Any] = field(default_factory=list)


@dataclass(frozen=True)
class ActivitySummary:
    """Daily activity ring summary: achieved and goal per metric."""

    start_date: Any
    active_energy: float | None = None
    active_energy_goal: float | None = None
    active_energy_unit: str = "kcal"
    apple_move_time: float | None = None
    apple_move_time_goal: float | None = None
    apple_move_time_unit: str = "min"
    apple_stand_hours: float | None = None
    apple_stand_hours_goal: float | None = None
    apple_stand_hours_unit: str = "count"
    apple_exercise_time: float | None = None
    apple_exercise_time_goal: float | None = None
    apple_exercise_time_unit: str = "sec"

    def as_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class ElectrocardiogramSample:
    """An ECG recording's classification and summary figures."""

    id: str
    start_date: datetime
    end_date: datetime
    algorithm_version: Any = ""
    average_heart_rate: Any = ""
    classification: str = ""
    sampling_frequency: Any = ""
    source: SourceAttribution = field(default_factory=SourceAttribution)

    def as_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass
class AggregationBucket:
    """A [start, end) window with an aggregated value.

    ``value`` is a scalar for native sums, or a dict keyed by activity label
    or nutrient name for locally merged types. Mutable only while the
    aggregator is filling it.
    """

    start_date: datetime
    end_date: datetime
    value: Any = field(default_factory=dict)
    unit: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))
