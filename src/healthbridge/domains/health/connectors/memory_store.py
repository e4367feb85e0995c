"""In-process NativeHealthStore for development and testing.

Behaves like the HealthKit binding closely enough to exercise the whole
pipeline: records are kept in the binding's raw shape, ``find_workouts``
ignores the date range, and correlation sub-samples are stored in grams.
"""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime
from typing import Any

from healthbridge.domains.health.domain_logic.aggregator import bucket_windows
from healthbridge.domains.health.domain_logic.health_models import parse_date
from healthbridge.domains.health.domain_logic.type_registry import (
    HK_WORKOUT_TYPE,
    convert_to_grams,
)

logger = logging.getLogger(__name__)

_SOURCE = {"sourceName": "healthbridge", "sourceBundleId": "io.healthbridge.memory"}

_SLEEP_CODES = {
    "HKCategoryValueSleepAnalysisInBed": 0,
    "HKCategoryValueSleepAnalysisAsleep": 1,
    "HKCategoryValueSleepAnalysisAwake": 2,
}


def _within(record: dict[str, Any], start: datetime, end: datetime) -> bool:
    return (
        parse_date(record["startDate"]) >= parse_date(start)
        and parse_date(record["endDate"]) <= parse_date(end)
    )


class InMemoryHealthStore:
    """NativeHealthStore backed by Python lists.

    Every primitive call is appended to ``calls`` as ``(name, args)`` so
    tests can assert on ordering and on calls that must not happen.

    Usage::

        store = InMemoryHealthStore(gender="female")
        store.add_sample({"quantityType": "HKQuantityTypeIdentifierStepCount", ...})
        bridge = HealthBridge(store)
    """

    def __init__(
        self,
        *,
        available: bool = True,
        gender: str = "unknown",
        date_of_birth: Any = None,
        authorized: bool = False,
    ) -> None:
        self._available = available
        self._gender = gender
        self._date_of_birth = date_of_birth
        self._authorize_all = authorized
        self._auth: dict[str, str] = {}
        self._samples: list[dict[str, Any]] = []
        self._workouts: list[dict[str, Any]] = []
        self._correlations: list[dict[str, Any]] = []
        self._activity_summaries: list[dict[str, Any]] = []
        self._electrocardiograms: list[dict[str, Any]] = []
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def add_sample(self, raw: dict[str, Any]) -> None:
        self._samples.append(raw)

    def add_workout(self, raw: dict[str, Any]) -> None:
        self._workouts.append(raw)

    def add_correlation(self, raw: dict[str, Any]) -> None:
        self._correlations.append(raw)

    def add_activity_summary(self, raw: dict[str, Any]) -> None:
        self._activity_summaries.append(raw)

    def add_electrocardiogram(self, raw: dict[str, Any]) -> None:
        self._electrocardiograms.append(raw)

    def set_auth_status(self, native_type: str, status: str) -> None:
        self._auth[native_type] = status

    # ------------------------------------------------------------------
    # NativeHealthStore
    # ------------------------------------------------------------------

    async def is_available(self) -> bool:
        self.calls.append(("is_available", ()))
        return self._available

    async def request_authorization(
        self, read_types: list[str], write_types: list[str]
    ) -> None:
        self.calls.append(("request_authorization", (list(read_types), list(write_types))))
        for native_type in [*read_types, *write_types]:
            self._auth.setdefault(native_type, "authorized")

    async def check_auth_status(self, native_type: str) -> str:
        self.calls.append(("check_auth_status", (native_type,)))
        if self._authorize_all:
            return self._auth.get(native_type, "authorized")
        return self._auth.get(native_type, "undetermined")

    async def read_gender(self) -> str:
        self.calls.append(("read_gender", ()))
        return self._gender

    async def read_date_of_birth(self) -> Any:
        self.calls.append(("read_date_of_birth", ()))
        return self._date_of_birth

    async def find_workouts(
        self, start_date: datetime, end_date: datetime
    ) -> list[dict[str, Any]]:
        # Like the native binding, the range is not applied here.
        self.calls.append(("find_workouts", (start_date, end_date)))
        return copy.deepcopy(self._workouts)

    async def query_sample_type(
        self,
        sample_type: str,
        start_date: datetime,
        end_date: datetime,
        unit: str | None = None,
    ) -> list[dict[str, Any]]:
        self.calls.append(("query_sample_type", (sample_type, start_date, end_date, unit)))
        return [copy.deepcopy(s) for s in self._of_type(sample_type, start_date, end_date)]

    async def query_correlation_type(
        self,
        correlation_type: str,
        start_date: datetime,
        end_date: datetime,
        units: list[str],
    ) -> list[dict[str, Any]]:
        self.calls.append(("query_correlation_type", (correlation_type, start_date, end_date, units)))
        return [
            copy.deepcopy(c)
            for c in self._correlations
            if c.get("correlationType") == correlation_type and _within(c, start_date, end_date)
        ]

    async def sum_quantity_type(
        self,
        sample_type: str,
        start_date: datetime,
        end_date: datetime,
        unit: str | None = None,
    ) -> float:
        self.calls.append(("sum_quantity_type", (sample_type, start_date, end_date, unit)))
        return sum(s.get("quantity") or 0 for s in self._of_type(sample_type, start_date, end_date))

    async def query_sample_type_aggregated(
        self,
        sample_type: str,
        start_date: datetime,
        end_date: datetime,
        aggregation: str,
        unit: str | None = None,
    ) -> list[dict[str, Any]]:
        self.calls.append((
            "query_sample_type_aggregated",
            (sample_type, start_date, end_date, aggregation, unit),
        ))
        samples = [s for s in self._samples if self._sample_type(s) == sample_type]
        result = []
        windows = bucket_windows(parse_date(start_date), parse_date(end_date), aggregation)
        for window_start, window_end in windows:
            total = sum(
                s.get("quantity") or 0
                for s in samples
                if window_start <= parse_date(s["startDate"]) < window_end
            )
            result.append({"startDate": window_start, "endDate": window_end, "quantity": total})
        return result

    async def query_activity_summary(
        self, start_date: datetime, end_date: datetime
    ) -> list[dict[str, Any]]:
        self.calls.append(("query_activity_summary", (start_date, end_date)))
        return copy.deepcopy(self._activity_summaries)

    async def query_electrocardiogram_samples(
        self, start_date: datetime, end_date: datetime
    ) -> list[dict[str, Any]]:
        self.calls.append(("query_electrocardiogram_samples", (start_date, end_date)))
        return [copy.deepcopy(e) for e in self._electrocardiograms if _within(e, start_date, end_date)]

    async def save_sample(self, sample: dict[str, Any]) -> None:
        self.calls.append(("save_sample", (sample,)))
        sample_type = sample["sampleType"]
        raw: dict[str, Any] = {
            "UUID": str(uuid.uuid4()),
            "startDate": sample["startDate"],
            "endDate": sample["endDate"],
            "unit": sample.get("unit"),
            "metadata": dict(sample.get("metadata") or {}),
            **_SOURCE,
        }
        if sample_type.startswith("HKCategoryTypeIdentifier"):
            raw["categoryType.identifier"] = sample_type
            value = sample.get("value", sample.get("amount"))
            raw["value"] = _SLEEP_CODES.get(value, value)
        else:
            raw["quantityType"] = sample_type
            raw["quantity"] = sample.get("amount")
        self._samples.append(raw)

    async def save_workout(self, workout: dict[str, Any]) -> None:
        self.calls.append(("save_workout", (workout,)))
        raw = {
            "UUID": str(uuid.uuid4()),
            "startDate": workout["startDate"],
            "endDate": workout["endDate"],
            "activityType": workout.get("activityType"),
            "HKactivityType": workout.get("activityType"),
            "energy": workout.get("energy"),
            "energyUnit": workout.get("energyUnit"),
            "distance": workout.get("distance"),
            "distanceUnit": workout.get("distanceUnit"),
            "duration": (workout["endDate"] - workout["startDate"]).total_seconds(),
            "durationUnit": "s",
            "metadata": dict(workout.get("metadata") or {}),
            **_SOURCE,
        }
        self._workouts.append(raw)

    async def save_correlation(self, correlation: dict[str, Any]) -> None:
        self.calls.append(("save_correlation", (correlation,)))
        self._correlations.append({
            "UUID": str(uuid.uuid4()),
            "correlationType": correlation["correlationType"],
            "startDate": correlation["startDate"],
            "endDate": correlation["endDate"],
            "metadata": dict(correlation.get("metadata") or {}),
            "samples": [
                {
                    "sampleType": sub["sampleType"],
                    "value": convert_to_grams(sub.get("unit"), sub.get("amount") or 0),
                }
                for sub in correlation.get("samples") or []
            ],
            **_SOURCE,
        })

    async def delete_samples(
        self, sample_type: str, start_date: datetime, end_date: datetime
    ) -> None:
        self.calls.append(("delete_samples", (sample_type, start_date, end_date)))

        def keep(record: dict[str, Any], record_type: str | None) -> bool:
            return not (record_type == sample_type and _within(record, start_date, end_date))

        if sample_type == HK_WORKOUT_TYPE:
            self._workouts = [w for w in self._workouts if keep(w, HK_WORKOUT_TYPE)]
        self._samples = [s for s in self._samples if keep(s, self._sample_type(s))]
        self._correlations = [c for c in self._correlations if keep(c, c.get("correlationType"))]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _sample_type(raw: dict[str, Any]) -> str | None:
        return raw.get("quantityType") or raw.get("categoryType.identifier")

    def _of_type(
        self, sample_type: str, start_date: datetime, end_date: datetime
    ) -> list[dict[str, Any]]:
        return [
            s for s in self._samples
            if self._sample_type(s) == sample_type and _within(s, start_date, end_date)
        ]
