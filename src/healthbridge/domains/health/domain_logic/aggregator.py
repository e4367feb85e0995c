"""Summaries and calendar-aligned time buckets over health samples.

Quantity types the native store can sum (steps, calories, distance,
nutrients, exercise time) are summed natively. Workouts and food
correlations are queried in full and merged locally per bucket.
"""

from __future__ import annotations

import bisect
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable

from healthbridge.domains.health.domain_logic.errors import (
    UnrecognizedBucketError,
    UnsupportedAggregationError,
)
from healthbridge.domains.health.domain_logic.health_models import (
    AggregationBucket,
    QueryOptions,
    parse_date,
)
from healthbridge.domains.health.domain_logic.type_registry import (
    DataTypeDescriptor,
    MergeRule,
    TypeRegistry,
)

if TYPE_CHECKING:
    from healthbridge.domains.health.connectors import NativeHealthStore
    from healthbridge.domains.health.domain_logic.query_dispatcher import QueryDispatcher

logger = logging.getLogger(__name__)

MergeFn = Callable[[Any, AggregationBucket], None]


# ---------------------------------------------------------------------------
# Calendar windows
# ---------------------------------------------------------------------------

def align_to_bucket(moment: datetime, bucket: str) -> datetime:
    """Start of the calendar window containing ``moment``, in its own timezone.

    Weeks start on Monday; a Sunday belongs to the week that began six days
    earlier.

    Raises:
        UnrecognizedBucketError: If ``bucket`` is not a known width.
    """
    if bucket == "hour":
        return moment.replace(minute=0, second=0, microsecond=0)
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if bucket == "day":
        return midnight
    if bucket == "week":
        return midnight - timedelta(days=midnight.weekday())
    if bucket == "month":
        return midnight.replace(day=1)
    if bucket == "year":
        return midnight.replace(month=1, day=1)
    raise UnrecognizedBucketError(bucket)


def next_bucket_start(window_start: datetime, bucket: str) -> datetime:
    if bucket == "hour":
        return window_start + timedelta(hours=1)
    if bucket == "day":
        return window_start + timedelta(days=1)
    if bucket == "week":
        return window_start + timedelta(days=7)
    if bucket == "month":
        if window_start.month == 12:
            return window_start.replace(year=window_start.year + 1, month=1)
        return window_start.replace(month=window_start.month + 1)
    if bucket == "year":
        return window_start.replace(year=window_start.year + 1)
    raise UnrecognizedBucketError(bucket)


def bucket_windows(
    start_date: datetime, end_date: datetime, bucket: str
) -> list[tuple[datetime, datetime]]:
    """Contiguous ``[start, end)`` windows covering ``[start_date, end_date]``.

    Always returns at least one window. The last window may extend past
    ``end_date``.
    """
    windows = []
    window_start = align_to_bucket(start_date, bucket)
    while True:
        window_end = next_bucket_start(window_start, bucket)
        windows.append((window_start, window_end))
        window_start = window_end
        if window_start >= end_date:
            return windows


# ---------------------------------------------------------------------------
# Merge rules
# ---------------------------------------------------------------------------

def merge_activity_samples(sample: Any, into: AggregationBucket) -> None:
    """Accumulate duration (seconds), distance and calories under the sample's label."""
    totals = into.value.setdefault(
        sample.value, {"duration": 0.0, "distance": 0, "calories": 0}
    )
    totals["duration"] += (sample.end_date - sample.start_date).total_seconds()
    totals["distance"] += getattr(sample, "distance", None) or 0
    totals["calories"] += getattr(sample, "calories", None) or 0


def merge_nutrition_samples(sample: Any, into: AggregationBucket) -> None:
    """Add each nutrient amount to the bucket's per-nutrient total."""
    for name, amount in (sample.value.get("nutrients") or {}).items():
        into.value[name] = into.value.get(name, 0) + amount


_LOCAL_MERGES: dict[MergeRule, tuple[MergeFn, str]] = {
    MergeRule.ACTIVITY: (merge_activity_samples, "activitySummary"),
    MergeRule.NUTRITION: (merge_nutrition_samples, "nutrition"),
}


# ---------------------------------------------------------------------------
# Reductions
# ---------------------------------------------------------------------------

def bucketize(
    samples: list[Any],
    bucket: str,
    start_date: datetime,
    end_date: datetime,
    unit: str | None,
    merge: MergeFn,
) -> list[AggregationBucket]:
    """Partition samples into calendar buckets and merge each bucket.

    A sample goes to the one bucket containing its start date, so a sample
    that crosses a boundary is counted once.
    """
    buckets = [
        AggregationBucket(start_date=ws, end_date=we, value={}, unit=unit)
        for ws, we in bucket_windows(start_date, end_date, bucket)
    ]
    starts = [b.start_date for b in buckets]
    for sample in samples:
        index = bisect.bisect_right(starts, sample.start_date) - 1
        if index < 0 or sample.start_date >= buckets[index].end_date:
            continue
        merge(sample, buckets[index])
    return buckets


def aggregate_into_result(
    samples: list[Any],
    unit: str | None,
    merge: MergeFn,
    start_date: datetime,
    end_date: datetime,
) -> AggregationBucket:
    """Merge every sample into one summary spanning the samples' extent."""
    if samples:
        start_date = min(s.start_date for s in samples)
        end_date = max(s.end_date for s in samples)
    result = AggregationBucket(start_date=start_date, end_date=end_date, value={}, unit=unit)
    for sample in samples:
        merge(sample, result)
    return result


def prepare_results(
    raw_buckets: list[dict[str, Any]],
    unit: str | None,
    merge_with: list[dict[str, Any]] | None = None,
) -> list[AggregationBucket]:
    """Convert native per-bucket sums, adding counterpart buckets with the same start."""
    counterpart: dict[datetime, float] = defaultdict(float)
    for raw in merge_with or []:
        counterpart[parse_date(raw.get("startDate"))] += raw.get("quantity") or 0

    results = []
    for raw in raw_buckets:
        start = parse_date(raw.get("startDate"))
        value = (raw.get("quantity") or 0) + counterpart.get(start, 0)
        results.append(AggregationBucket(
            start_date=start,
            end_date=parse_date(raw.get("endDate")),
            value=value,
            unit=unit,
        ))
    return results


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

class Aggregator:
    """Implements query_aggregated on top of the store and the dispatcher."""

    def __init__(
        self,
        store: NativeHealthStore,
        registry: TypeRegistry,
        dispatcher: QueryDispatcher,
    ) -> None:
        self._store = store
        self._registry = registry
        self._dispatcher = dispatcher

    async def query_aggregated(
        self, options: QueryOptions
    ) -> AggregationBucket | list[AggregationBucket]:
        """One summary, or a list of buckets when ``options.bucket`` is set.

        Raises:
            UnsupportedAggregationError: Before any store call, if the type
                has no aggregation rule.
        """
        descriptor = self._registry.lookup(options.data_type)
        if descriptor is None or descriptor.merge_rule is None:
            raise UnsupportedAggregationError(options.data_type)

        if descriptor.merge_rule is MergeRule.NATIVE_SUM:
            unit = options.unit or (descriptor.unit if isinstance(descriptor.unit, str) else None)
            if options.bucket:
                return await self._native_buckets(descriptor, options, unit)
            return await self._native_sum(descriptor, options, unit)

        merge, unit_label = _LOCAL_MERGES[descriptor.merge_rule]
        samples = await self._dispatcher.query(
            QueryOptions(options.data_type, options.start_date, options.end_date)
        )
        logger.debug("Merging %d %s samples locally", len(samples), descriptor.name)
        if options.bucket:
            return bucketize(
                samples, options.bucket, options.start_date, options.end_date,
                unit_label, merge,
            )
        return aggregate_into_result(
            samples, unit_label, merge, options.start_date, options.end_date
        )

    async def _native_sum(
        self, descriptor: DataTypeDescriptor, options: QueryOptions, unit: str | None
    ) -> AggregationBucket:
        total = await self._store.sum_quantity_type(
            descriptor.native_type, options.start_date, options.end_date, unit
        )
        if descriptor.counterpart:
            total += await self._store.sum_quantity_type(
                descriptor.counterpart, options.start_date, options.end_date, unit
            )
        return AggregationBucket(
            start_date=options.start_date,
            end_date=options.end_date,
            value=total,
            unit=unit,
        )

    async def _native_buckets(
        self, descriptor: DataTypeDescriptor, options: QueryOptions, unit: str | None
    ) -> list[AggregationBucket]:
        raw_buckets = await self._store.query_sample_type_aggregated(
            descriptor.native_type, options.start_date, options.end_date,
            options.bucket, unit,
        )
        counterpart = None
        if descriptor.counterpart:
            counterpart = await self._store.query_sample_type_aggregated(
                descriptor.counterpart, options.start_date, options.end_date,
                options.bucket, unit,
            )
        return prepare_results(raw_buckets, unit, counterpart)
