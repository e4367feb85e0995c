"""Tests for calendar bucketing and aggregated queries."""

from __future__ import annotations

import asyncio
import itertools
from datetime import datetime, timedelta, timezone

import pytest
from conftest import STEPS, make_quantity_sample, make_workout

from healthbridge.domains.health.domain_logic.aggregator import (
    Aggregator,
    aggregate_into_result,
    align_to_bucket,
    bucket_windows,
    bucketize,
    merge_activity_samples,
    merge_nutrition_samples,
    prepare_results,
)
from healthbridge.domains.health.domain_logic.errors import (
    UnrecognizedBucketError,
    UnsupportedAggregationError,
)
from healthbridge.domains.health.domain_logic.health_models import (
    AggregationBucket,
    HealthSample,
    QueryOptions,
    WorkoutSample,
)
from healthbridge.domains.health.domain_logic.query_dispatcher import QueryDispatcher

JAN_1 = datetime(2026, 1, 1)
JAN_8 = datetime(2026, 1, 8)
WALKING = "HKQuantityTypeIdentifierDistanceWalkingRunning"
CYCLING = "HKQuantityTypeIdentifierDistanceCycling"


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _aggregate(store, registry, data_type, start=JAN_1, end=JAN_8, **kw):
    aggregator = Aggregator(store, registry, QueryDispatcher(store, registry))
    return _run(aggregator.query_aggregated(QueryOptions(data_type, start, end, **kw)))


def _activity(label, start, minutes):
    return HealthSample(
        id=f"{label}-{start.isoformat()}",
        start_date=start,
        end_date=start + timedelta(minutes=minutes),
        value=label,
    )


NUTRIENT_SETS = (
    {"nutrition.protein": 10, "nutrition.sugar": 4},
    {"nutrition.protein": 5, "nutrition.sodium": 400},
    {"nutrition.protein": 12, "nutrition.sugar": 2},
)


def _nutrients(amounts):
    return HealthSample(id="n", start_date=JAN_1, end_date=JAN_1, value={"nutrients": dict(amounts)})


def _merged(samples):
    bucket = AggregationBucket(JAN_1, JAN_8)
    for sample in samples:
        merge_nutrition_samples(sample, bucket)
    return bucket


def _workout(label, start, minutes, calories, distance):
    return WorkoutSample(
        id=f"{label}-{start.isoformat()}",
        start_date=start,
        end_date=start + timedelta(minutes=minutes),
        value=label,
        calories=calories,
        distance=distance,
    )


class TestAlignment:
    def test_day_and_hour(self):
        moment = datetime(2026, 3, 14, 15, 42, 7)
        assert align_to_bucket(moment, "day") == datetime(2026, 3, 14)
        assert align_to_bucket(moment, "hour") == datetime(2026, 3, 14, 15)

    def test_week_starts_monday(self):
        # 2026-01-07 is a Wednesday
        assert align_to_bucket(datetime(2026, 1, 7, 12), "week") == datetime(2026, 1, 5)

    def test_sunday_belongs_to_previous_monday(self):
        # 2026-01-04 is a Sunday
        assert align_to_bucket(datetime(2026, 1, 4, 9), "week") == datetime(2025, 12, 29)

    def test_month_and_year(self):
        moment = datetime(2026, 8, 19, 6)
        assert align_to_bucket(moment, "month") == datetime(2026, 8, 1)
        assert align_to_bucket(moment, "year") == datetime(2026, 1, 1)

    def test_timezone_is_preserved(self):
        tz = timezone(timedelta(hours=-5))
        aligned = align_to_bucket(datetime(2026, 1, 2, 23, 30, tzinfo=tz), "day")
        assert aligned == datetime(2026, 1, 2, tzinfo=tz)
        assert aligned.tzinfo is tz

    def test_unknown_bucket(self):
        with pytest.raises(UnrecognizedBucketError):
            align_to_bucket(JAN_1, "fortnight")


class TestBucketWindows:
    def test_seven_day_buckets(self):
        windows = bucket_windows(JAN_1, JAN_8, "day")
        assert len(windows) == 7
        assert windows[0] == (JAN_1, datetime(2026, 1, 2))
        assert windows[-1] == (datetime(2026, 1, 7), JAN_8)

    def test_windows_are_contiguous(self):
        windows = bucket_windows(datetime(2026, 1, 1, 10), datetime(2026, 4, 2), "month")
        assert windows[0][0] == JAN_1
        for (_, end), (start, _) in zip(windows, windows[1:]):
            assert end == start
        assert len(windows) == 4

    def test_month_rolls_over_year(self):
        windows = bucket_windows(datetime(2025, 12, 5), datetime(2026, 1, 10), "month")
        assert windows == [
            (datetime(2025, 12, 1), datetime(2026, 1, 1)),
            (datetime(2026, 1, 1), datetime(2026, 2, 1)),
        ]

    def test_empty_range_yields_one_window(self):
        assert bucket_windows(JAN_1, JAN_1, "day") == [(JAN_1, datetime(2026, 1, 2))]


class TestMerging:
    def test_activity_merge_accumulates_per_label(self):
        bucket = AggregationBucket(JAN_1, JAN_8)
        merge_activity_samples(_workout("running", datetime(2026, 1, 2, 7), 30, 300, 5000), bucket)
        merge_activity_samples(_workout("running", datetime(2026, 1, 3, 7), 15, None, 2000), bucket)
        merge_activity_samples(_activity("sleep", datetime(2026, 1, 2, 23), 420), bucket)

        assert bucket.value == {
            "running": {"duration": 2700.0, "distance": 7000, "calories": 300},
            "sleep": {"duration": 25200.0, "distance": 0, "calories": 0},
        }

    def test_merge_order_does_not_matter(self):
        samples = [
            _workout("running", datetime(2026, 1, 2, 7), 30, 300, 5000),
            _workout("walking", datetime(2026, 1, 2, 12), 20, 80, 1500),
            _workout("running", datetime(2026, 1, 4, 7), 45, 420, 7000),
        ]
        forward = aggregate_into_result(samples, "activitySummary", merge_activity_samples, JAN_1, JAN_8)
        backward = aggregate_into_result(samples[::-1], "activitySummary", merge_activity_samples, JAN_1, JAN_8)
        assert forward.value == backward.value

    def test_nutrition_merge(self):
        bucket = AggregationBucket(JAN_1, JAN_8)
        for nutrients in ({"nutrition.protein": 10, "nutrition.sugar": 4}, {"nutrition.protein": 5}):
            merge_nutrition_samples(HealthSample(id="n", start_date=JAN_1, end_date=JAN_1,
                                                 value={"nutrients": nutrients}), bucket)
        assert bucket.value == {"nutrition.protein": 15, "nutrition.sugar": 4}

    def test_nutrition_merge_is_commutative(self):
        samples = [_nutrients(a) for a in NUTRIENT_SETS]
        expected = _merged(samples).value
        assert expected == {"nutrition.protein": 27, "nutrition.sugar": 6, "nutrition.sodium": 400}
        for ordering in itertools.permutations(samples):
            assert _merged(ordering).value == expected

    def test_nutrition_merge_is_associative(self):
        a, b, c = (_nutrients(n) for n in NUTRIENT_SETS)
        left = _merged([_nutrients(_merged([a, b]).value), c])
        right = _merged([a, _nutrients(_merged([b, c]).value)])
        assert left.value == right.value == _merged([a, b, c]).value

    def test_empty_summary_uses_requested_range(self):
        result = aggregate_into_result([], "nutrition", merge_nutrition_samples, JAN_1, JAN_8)
        assert (result.start_date, result.end_date, result.value) == (JAN_1, JAN_8, {})

    def test_summary_spans_sample_extent(self):
        samples = [_activity("yoga", datetime(2026, 1, 3, 9), 60), _activity("yoga", datetime(2026, 1, 5, 9), 30)]
        result = aggregate_into_result(samples, "activitySummary", merge_activity_samples, JAN_1, JAN_8)
        assert result.start_date == datetime(2026, 1, 3, 9)
        assert result.end_date == datetime(2026, 1, 5, 9, 30)


class TestBucketize:
    def test_each_sample_lands_in_one_bucket(self):
        samples = [
            _activity("sleep", datetime(2026, 1, 1, 23), 480),
            _activity("running", datetime(2026, 1, 3, 7), 30),
        ]
        buckets = bucketize(samples, "day", JAN_1, JAN_8, "activitySummary", merge_activity_samples)

        assert len(buckets) == 7
        assert list(buckets[0].value) == ["sleep"]
        assert buckets[1].value == {}
        assert list(buckets[2].value) == ["running"]
        assert all(b.unit == "activitySummary" for b in buckets)

    def test_prepare_results_adds_counterpart_by_start(self):
        raw = [{"startDate": JAN_1, "endDate": datetime(2026, 1, 2), "quantity": 100}]
        extra = [{"startDate": JAN_1, "endDate": datetime(2026, 1, 2), "quantity": 40}]
        results = prepare_results(raw, "m", extra)
        assert results[0].value == 140
        assert results[0].unit == "m"


class TestAggregator:
    def test_steps_total(self, memory_store, registry):
        memory_store.add_sample(make_quantity_sample(STEPS, 1200, datetime(2026, 1, 2, 9)))
        memory_store.add_sample(make_quantity_sample(STEPS, 800, datetime(2026, 1, 6, 9)))

        result = _aggregate(memory_store, registry, "steps")
        assert result.value == 2000
        assert result.unit == "count"
        assert (result.start_date, result.end_date) == (JAN_1.astimezone(), JAN_8.astimezone())

    def test_distance_sums_cycling_sequentially(self, memory_store, registry):
        memory_store.add_sample(make_quantity_sample(WALKING, 1000, datetime(2026, 1, 2)))
        memory_store.add_sample(make_quantity_sample(CYCLING, 5000, datetime(2026, 1, 2)))

        result = _aggregate(memory_store, registry, "distance")
        assert result.value == 6000
        assert [args[0] for _, args in memory_store.calls] == [WALKING, CYCLING]

    def test_daily_steps_buckets(self, memory_store, registry):
        memory_store.add_sample(make_quantity_sample(STEPS, 1200, datetime(2026, 1, 2, 9)))
        memory_store.add_sample(make_quantity_sample(STEPS, 300, datetime(2026, 1, 2, 18)))

        buckets = _aggregate(memory_store, registry, "steps", bucket="day")
        assert len(buckets) == 7
        assert [b.value for b in buckets] == [0, 1500, 0, 0, 0, 0, 0]

    def test_activity_summary_merges_workouts_and_sleep(self, memory_store, registry):
        memory_store.add_workout(make_workout("running", datetime(2026, 1, 2, 7), datetime(2026, 1, 2, 8),
                                              energy=400, distance=9000))
        memory_store.add_sample({
            "categoryType.identifier": "HKCategoryTypeIdentifierSleepAnalysis",
            "value": 1,
            "startDate": datetime(2026, 1, 2, 23),
            "endDate": datetime(2026, 1, 3, 6),
        })

        result = _aggregate(memory_store, registry, "activity")
        assert result.unit == "activitySummary"
        assert result.value == {
            "running": {"duration": 3600.0, "distance": 9000, "calories": 400},
            "sleep": {"duration": 25200.0, "distance": 0, "calories": 0},
        }

    def test_nutrition_weekly_buckets(self, memory_store, registry):
        memory_store.add_correlation({
            "correlationType": "HKCorrelationTypeIdentifierFood",
            "startDate": datetime(2026, 1, 6, 12),
            "endDate": datetime(2026, 1, 6, 12),
            "samples": [{"sampleType": "HKQuantityTypeIdentifierDietaryProtein", "value": 25}],
        })

        buckets = _aggregate(memory_store, registry, "nutrition", bucket="week")
        assert [b.start_date for b in buckets] == [
            datetime(2025, 12, 29).astimezone(),
            datetime(2026, 1, 5).astimezone(),
        ]
        assert buckets[0].value == {}
        assert buckets[1].value == {"nutrition.protein": 25}
        assert buckets[1].unit == "nutrition"

    @pytest.mark.parametrize("data_type", ["heart_rate", "blood_pressure", "no_such_type"])
    def test_unsupported_types_make_no_calls(self, memory_store, registry, data_type):
        with pytest.raises(UnsupportedAggregationError, match=data_type):
            _aggregate(memory_store, registry, data_type)
        assert memory_store.calls == []
