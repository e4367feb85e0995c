"""Turn a query into native store calls and normalized samples.

Handlers are chosen from the descriptor's ``query_kind``. When one logical
query needs two native calls (distance + cycling, calories + basal,
workouts + sleep), the second call is awaited only after the first
returns, and a failure in either propagates without partial results.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from healthbridge.domains.health.domain_logic.health_models import QueryOptions
from healthbridge.domains.health.domain_logic.result_normalizer import (
    characteristic_sample,
    normalize_activity_summary,
    normalize_correlation,
    normalize_electrocardiogram,
    normalize_sample,
    normalize_sleep,
    normalize_workout,
)
from healthbridge.domains.health.domain_logic.type_registry import (
    DataTypeDescriptor,
    QueryKind,
    TypeRegistry,
)

if TYPE_CHECKING:
    from healthbridge.domains.health.connectors import NativeHealthStore

logger = logging.getLogger(__name__)

_Handler = Callable[[DataTypeDescriptor, QueryOptions], Awaitable[list[Any]]]


class QueryDispatcher:
    """Stateless query front end over a ``NativeHealthStore``.

    Usage::

        dispatcher = QueryDispatcher(store, default_registry())
        samples = await dispatcher.query(QueryOptions("steps", start, end))
    """

    def __init__(self, store: NativeHealthStore, registry: TypeRegistry) -> None:
        self._store = store
        self._registry = registry
        self._handlers: dict[QueryKind, _Handler] = {
            QueryKind.CHARACTERISTIC: self._query_characteristic,
            QueryKind.WORKOUT: self._query_workouts,
            QueryKind.CORRELATION: self._query_correlation,
            QueryKind.SAMPLE: self._query_samples,
            QueryKind.ACTIVITY_SUMMARY: self._query_activity_summary,
            QueryKind.ELECTROCARDIOGRAM: self._query_electrocardiogram,
        }

    async def query(self, options: QueryOptions) -> list[Any]:
        """Query one generic data type over ``[start_date, end_date]``.

        Raises:
            UnknownDataTypeError: If the data type is not registered.
        """
        descriptor = self._registry.get(options.data_type)
        logger.debug(
            "Querying %s (%s) from %s to %s",
            descriptor.name,
            descriptor.query_kind.value,
            options.start_date.isoformat(),
            options.end_date.isoformat(),
        )
        return await self._handlers[descriptor.query_kind](descriptor, options)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _query_characteristic(
        self, descriptor: DataTypeDescriptor, options: QueryOptions
    ) -> list[Any]:
        if descriptor.name == "date_of_birth":
            value = await self._store.read_date_of_birth()
        else:
            value = await self._store.read_gender()
        return [characteristic_sample(descriptor, value, options.start_date, options.end_date)]

    async def _query_workouts(
        self, descriptor: DataTypeDescriptor, options: QueryOptions
    ) -> list[Any]:
        # The binding returns every workout; keep only those fully inside the range.
        raw_workouts = await self._store.find_workouts(options.start_date, options.end_date)
        result: list[Any] = []
        for raw in raw_workouts:
            workout = normalize_workout(raw)
            if workout.start_date >= options.start_date and workout.end_date <= options.end_date:
                result.append(workout)

        if descriptor.counterpart:
            raw_sleep = await self._store.query_sample_type(
                descriptor.counterpart, options.start_date, options.end_date
            )
            result.extend(normalize_sleep(raw) for raw in raw_sleep)
        return result

    async def _query_correlation(
        self, descriptor: DataTypeDescriptor, options: QueryOptions
    ) -> list[Any]:
        raw_correlations = await self._store.query_correlation_type(
            descriptor.native_type, options.start_date, options.end_date, descriptor.units
        )
        return [
            normalize_correlation(raw, descriptor, self._registry)
            for raw in raw_correlations
        ]

    async def _query_samples(
        self, descriptor: DataTypeDescriptor, options: QueryOptions
    ) -> list[Any]:
        unit = options.unit or (descriptor.unit if isinstance(descriptor.unit, str) else None)
        raw_samples = await self._store.query_sample_type(
            descriptor.native_type, options.start_date, options.end_date, unit
        )
        result = [normalize_sample(raw, descriptor, unit) for raw in raw_samples]

        if descriptor.counterpart:
            # Appended as distinct samples, not summed into the primary ones
            raw_counterpart = await self._store.query_sample_type(
                descriptor.counterpart, options.start_date, options.end_date, unit
            )
            result.extend(normalize_sample(raw, descriptor, unit) for raw in raw_counterpart)
        return result

    async def _query_activity_summary(
        self, descriptor: DataTypeDescriptor, options: QueryOptions
    ) -> list[Any]:
        raw_summaries = await self._store.query_activity_summary(
            options.start_date, options.end_date
        )
        return [normalize_activity_summary(raw) for raw in raw_summaries]

    async def _query_electrocardiogram(
        self, descriptor: DataTypeDescriptor, options: QueryOptions
    ) -> list[Any]:
        raw_samples = await self._store.query_electrocardiogram_samples(
            options.start_date, options.end_date
        )
        return [normalize_electrocardiogram(raw) for raw in raw_samples]
