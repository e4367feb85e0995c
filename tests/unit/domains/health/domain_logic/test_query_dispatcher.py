"""Tests for dispatching queries to native store calls."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from conftest import STEPS, make_quantity_sample, make_workout

from healthbridge.domains.health.connectors.memory_store import InMemoryHealthStore
from healthbridge.domains.health.domain_logic.errors import UnknownDataTypeError
from healthbridge.domains.health.domain_logic.health_models import QueryOptions
from healthbridge.domains.health.domain_logic.query_dispatcher import QueryDispatcher

WALKING = "HKQuantityTypeIdentifierDistanceWalkingRunning"
CYCLING = "HKQuantityTypeIdentifierDistanceCycling"
SLEEP = "HKCategoryTypeIdentifierSleepAnalysis"

JAN_1 = datetime(2026, 1, 1)
JAN_8 = datetime(2026, 1, 8)


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _query(store, registry, data_type, **kw):
    dispatcher = QueryDispatcher(store, registry)
    return _run(dispatcher.query(QueryOptions(data_type, JAN_1, JAN_8, **kw)))


class _FailingStore(InMemoryHealthStore):
    async def query_sample_type(self, sample_type, start_date, end_date, unit=None):
        self.calls.append(("query_sample_type", (sample_type,)))
        raise ConnectionError("binding went away")


class TestSamples:
    def test_samples_inside_range(self, memory_store, registry):
        memory_store.add_sample(make_quantity_sample(STEPS, 100, datetime(2026, 1, 2, 9)))
        memory_store.add_sample(make_quantity_sample(STEPS, 200, datetime(2026, 1, 3, 9)))
        memory_store.add_sample(make_quantity_sample(STEPS, 999, datetime(2026, 2, 1, 9)))

        samples = _query(memory_store, registry, "steps")
        assert [s.value for s in samples] == [100, 200]
        assert all(s.unit == "count" for s in samples)

    def test_unit_override_is_passed_through(self, memory_store, registry):
        _query(memory_store, registry, "distance", unit="km")
        units = [args[3] for name, args in memory_store.calls]
        assert units == ["km", "km"]

    def test_distance_appends_cycling_after_walking(self, memory_store, registry):
        memory_store.add_sample(make_quantity_sample(WALKING, 1500, datetime(2026, 1, 2)))
        memory_store.add_sample(make_quantity_sample(CYCLING, 8000, datetime(2026, 1, 2)))

        samples = _query(memory_store, registry, "distance")
        assert [s.value for s in samples] == [1500, 8000]
        assert [args[0] for _, args in memory_store.calls] == [WALKING, CYCLING]

    def test_failure_stops_before_counterpart(self, registry):
        store = _FailingStore()
        with pytest.raises(ConnectionError):
            _query(store, registry, "distance")
        assert store.calls == [("query_sample_type", (WALKING,))]

    def test_unknown_type_makes_no_calls(self, memory_store, registry):
        with pytest.raises(UnknownDataTypeError):
            _query(memory_store, registry, "calories.total")
        assert memory_store.calls == []


class TestWorkouts:
    def test_activity_filters_workouts_and_appends_sleep(self, memory_store, registry):
        memory_store.add_workout(make_workout("running", datetime(2026, 1, 2, 7), datetime(2026, 1, 2, 8)))
        memory_store.add_workout(make_workout("cycling", datetime(2025, 12, 30, 7), datetime(2025, 12, 30, 8)))
        memory_store.add_sample({
            "UUID": "s1",
            "categoryType.identifier": SLEEP,
            "value": 1,
            "startDate": datetime(2026, 1, 2, 23),
            "endDate": datetime(2026, 1, 3, 6),
        })

        samples = _query(memory_store, registry, "activity")
        assert [s.value for s in samples] == ["running", "sleep"]
        assert [name for name, _ in memory_store.calls] == ["find_workouts", "query_sample_type"]

    def test_naive_range_over_offset_records(self, memory_store, registry):
        workout = make_workout("running", datetime(2024, 1, 2, 8), datetime(2024, 1, 2, 9))
        workout["startDate"] = "2024-01-02 08:00:00 +0000"
        workout["endDate"] = "2024-01-02 09:00:00 +0000"
        memory_store.add_workout(workout)

        dispatcher = QueryDispatcher(memory_store, registry)
        options = QueryOptions("workouts", datetime(2024, 1, 1), datetime(2024, 1, 8))
        samples = _run(dispatcher.query(options))
        assert [s.value for s in samples] == ["running"]
        assert samples[0].start_date.utcoffset() == timedelta(0)

    def test_naive_range_over_offset_samples(self, memory_store, registry):
        memory_store.add_sample(
            make_quantity_sample(STEPS, 410, datetime(2026, 1, 2, 9, tzinfo=timezone.utc))
        )
        samples = _query(memory_store, registry, "steps")
        assert [s.value for s in samples] == [410]

    def test_workouts_type_has_no_sleep(self, memory_store, registry):
        memory_store.add_workout(make_workout("walking", datetime(2026, 1, 4, 7), datetime(2026, 1, 4, 8)))
        samples = _query(memory_store, registry, "workouts")
        assert [s.value for s in samples] == ["walking"]
        assert [name for name, _ in memory_store.calls] == ["find_workouts"]


class TestOtherKinds:
    def test_gender_is_wrapped_as_sample(self, memory_store, registry):
        samples = _query(memory_store, registry, "gender")
        assert len(samples) == 1
        assert samples[0].value == "female"
        assert samples[0].start_date == JAN_1.astimezone()
        assert samples[0].end_date == JAN_8.astimezone()

    def test_nutrition_queries_food_correlation_with_units(self, memory_store, registry):
        _query(memory_store, registry, "nutrition")
        name, args = memory_store.calls[0]
        assert name == "query_correlation_type"
        assert args[0] == "HKCorrelationTypeIdentifierFood"
        assert args[3] == ["g", "ml", "kcal"]

    def test_activity_summary(self, memory_store, registry):
        memory_store.add_activity_summary({"startDate": "2026-01-02", "activeEnergy": 300})
        summaries = _query(memory_store, registry, "activitySummary")
        assert summaries[0].active_energy == 300

    def test_electrocardiogram(self, memory_store, registry):
        memory_store.add_electrocardiogram({
            "id": "ecg-1",
            "startDate": datetime(2026, 1, 5, 10),
            "endDate": datetime(2026, 1, 5, 10, 1),
            "classification": "SinusRhythm",
        })
        ecgs = _query(memory_store, registry, "electrocardiogram")
        assert [e.classification for e in ecgs] == ["SinusRhythm"]
