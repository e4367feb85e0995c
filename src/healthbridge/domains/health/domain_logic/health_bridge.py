"""Platform-agnostic health data API over a native HealthKit store.

``HealthBridge`` is the single entry point the tools use. It wires the
registry, resolver, dispatcher and aggregator together and owns the write
path (store / delete), which shapes generic records into the binding's
sample, workout and correlation payloads.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Sequence

from healthbridge.domains.health.domain_logic.aggregator import Aggregator
from healthbridge.domains.health.domain_logic.errors import (
    InvalidRecordError,
    NotDeletableError,
    NotWritableError,
    UnknownDataTypeError,
)
from healthbridge.domains.health.domain_logic.health_models import (
    AggregationBucket,
    QueryOptions,
    StoreRecord,
)
from healthbridge.domains.health.domain_logic.query_dispatcher import QueryDispatcher
from healthbridge.domains.health.domain_logic.result_normalizer import (
    DELIVERY_REASON_KEY,
    DELIVERY_REASON_LEGACY_KEY,
    FOOD_METADATA_KEYS,
    GLUCOSE_SOURCE_KEY,
    MEAL_TIME_KEY,
    MEAL_TIME_LEGACY_KEY,
    SLEEP_TIME_KEY,
)
from healthbridge.domains.health.domain_logic.type_registry import (
    HK_BP_DIASTOLIC,
    HK_BP_SYSTOLIC,
    HK_SLEEP_ANALYSIS,
    HK_WORKOUT_TYPE,
    NUTRITION_PREFIX,
    SLEEP_STORE_VALUES,
    DataTypeDescriptor,
    QueryKind,
    TypeRegistry,
    ValueRule,
    default_registry,
)
from healthbridge.domains.health.domain_logic.type_resolver import (
    TypeRequestItem,
    TypeResolver,
)

if TYPE_CHECKING:
    from healthbridge.domains.health.connectors import NativeHealthStore

logger = logging.getLogger(__name__)


class HealthBridge:
    """Query, aggregate, store and delete generic health data.

    Usage::

        bridge = HealthBridge(store)
        await bridge.request_authorization(["steps", {"read": ["distance"]}])
        samples = await bridge.query(QueryOptions("steps", start, end))
        daily = await bridge.query_aggregated(
            QueryOptions("steps", start, end, bucket="day")
        )
    """

    def __init__(
        self,
        store: NativeHealthStore,
        registry: TypeRegistry | None = None,
    ) -> None:
        self._store = store
        self._registry = registry or default_registry()
        self._resolver = TypeResolver(store, self._registry)
        self._dispatcher = QueryDispatcher(store, self._registry)
        self._aggregator = Aggregator(store, self._registry, self._dispatcher)

    @property
    def registry(self) -> TypeRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Availability and authorization
    # ------------------------------------------------------------------

    async def is_available(self) -> bool:
        return await self._store.is_available()

    def get_available_data_types(self) -> list[dict[str, str]]:
        return self._registry.available_data_types()

    async def request_authorization(self, request: Sequence[TypeRequestItem]) -> None:
        await self._resolver.request_authorization(request)

    async def is_authorized(self, request: Sequence[TypeRequestItem]) -> bool:
        return await self._resolver.is_authorized(request)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query(self, options: QueryOptions) -> list[Any]:
        return await self._dispatcher.query(options)

    async def query_aggregated(
        self, options: QueryOptions
    ) -> AggregationBucket | list[AggregationBucket]:
        return await self._aggregator.query_aggregated(options)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def store(self, record: StoreRecord) -> None:
        """Write one generic record to the native store.

        Raises:
            UnknownDataTypeError: Unknown data type or nutrient name.
            NotWritableError: Read-only type; no store call is made.
            InvalidRecordError: The value does not fit the data type; no
                store call is made.
        """
        descriptor = self._registry.get(record.data_type)
        if not descriptor.writable:
            raise NotWritableError(record.data_type)

        if descriptor.query_kind is QueryKind.WORKOUT:
            await self._store_activity(record)
        elif descriptor.name == "nutrition":
            await self._store.save_correlation(self._food_correlation(descriptor, record))
        elif descriptor.name == "blood_pressure":
            await self._store.save_correlation(self._blood_pressure_correlation(descriptor, record))
        else:
            await self._store.save_sample(self._sample_payload(descriptor, record))
        logger.info("Stored %s sample starting %s", record.data_type, record.start_date.isoformat())

    async def delete(self, record: StoreRecord) -> None:
        """Delete samples of a generic type within the record's range.

        Raises:
            UnknownDataTypeError: Unknown data type.
            NotDeletableError: Read-only type; no store call is made.
        """
        descriptor = self._registry.get(record.data_type)
        if not descriptor.writable:
            raise NotDeletableError(record.data_type)

        if descriptor.query_kind is QueryKind.WORKOUT:
            is_sleep = str(record.value or "").startswith("sleep")
            sample_type = HK_SLEEP_ANALYSIS if is_sleep else HK_WORKOUT_TYPE
        elif record.cycling and descriptor.name == "distance":
            sample_type = descriptor.counterpart
        else:
            sample_type = descriptor.native_type
        await self._store.delete_samples(sample_type, record.start_date, record.end_date)
        logger.info("Deleted %s samples (%s)", record.data_type, sample_type)

    # ------------------------------------------------------------------
    # Payload builders
    # ------------------------------------------------------------------

    async def _store_activity(self, record: StoreRecord) -> None:
        if not isinstance(record.value, str) or not record.value:
            raise InvalidRecordError(record.data_type, "an activity or sleep name")
        if record.value in SLEEP_STORE_VALUES:
            await self._store.save_sample({
                "sampleType": HK_SLEEP_ANALYSIS,
                "startDate": record.start_date,
                "endDate": record.end_date,
                "value": SLEEP_STORE_VALUES[record.value],
                "metadata": dict(record.metadata),
            })
            return

        workout: dict[str, Any] = {
            "activityType": record.value,
            "startDate": record.start_date,
            "endDate": record.end_date,
            "requestReadPermission": False,
            "metadata": dict(record.metadata),
        }
        if record.calories:
            workout["energy"] = record.calories
            workout["energyUnit"] = "kcal"
        if record.distance:
            workout["distance"] = record.distance
            workout["distanceUnit"] = "m"
        await self._store.save_workout(workout)

    def _food_correlation(
        self, descriptor: DataTypeDescriptor, record: StoreRecord
    ) -> dict[str, Any]:
        value = _mapping_value(record, "an object with optional 'nutrients'")
        nutrients = value.get("nutrients") or {}
        if not isinstance(nutrients, Mapping):
            raise InvalidRecordError(record.data_type, "'nutrients' as an object of amounts")
        metadata = dict(record.metadata)
        for key, field_name in FOOD_METADATA_KEYS:
            if value.get(field_name):
                metadata[key] = value[field_name]

        samples = []
        for nutrient, amount in nutrients.items():
            member = self._registry.lookup(nutrient) if nutrient.startswith(NUTRITION_PREFIX) else None
            if member is None:
                raise UnknownDataTypeError(nutrient, f"Cannot recognise nutrition item {nutrient}")
            samples.append({
                "startDate": record.start_date,
                "endDate": record.end_date,
                "sampleType": member.native_type,
                "unit": member.unit,
                "amount": amount,
            })
        return {
            "correlationType": descriptor.native_type,
            "startDate": record.start_date,
            "endDate": record.end_date,
            "metadata": metadata,
            "samples": samples,
        }

    def _blood_pressure_correlation(
        self, descriptor: DataTypeDescriptor, record: StoreRecord
    ) -> dict[str, Any]:
        value = _mapping_value(record, "'systolic' and 'diastolic'", ("systolic", "diastolic"))
        return {
            "correlationType": descriptor.native_type,
            "startDate": record.start_date,
            "endDate": record.end_date,
            "metadata": dict(record.metadata),
            "samples": [
                {
                    "startDate": record.start_date,
                    "endDate": record.end_date,
                    "sampleType": sample_type,
                    "unit": "mmHg",
                    "amount": value[key],
                }
                for sample_type, key in ((HK_BP_SYSTOLIC, "systolic"), (HK_BP_DIASTOLIC, "diastolic"))
            ],
        }

    def _sample_payload(
        self, descriptor: DataTypeDescriptor, record: StoreRecord
    ) -> dict[str, Any]:
        sample_type = descriptor.native_type
        if record.cycling and descriptor.name == "distance":
            sample_type = descriptor.counterpart

        metadata = dict(record.metadata)
        value = record.value
        if descriptor.value_rule is ValueRule.BLOOD_GLUCOSE:
            value = _mapping_value(
                record, "'glucose' with optional 'meal', 'sleep' and 'source'", ("glucose",)
            )
            amount = value["glucose"]
            meal = value.get("meal")
            if meal:
                meal = str(meal)
                metadata[MEAL_TIME_KEY] = meal
                if meal.startswith("before_"):
                    metadata[MEAL_TIME_LEGACY_KEY] = 1
                elif meal.startswith("after_"):
                    metadata[MEAL_TIME_LEGACY_KEY] = 2
            if value.get("sleep"):
                metadata[SLEEP_TIME_KEY] = value["sleep"]
            if value.get("source"):
                metadata[GLUCOSE_SOURCE_KEY] = value["source"]
        elif descriptor.value_rule is ValueRule.INSULIN:
            value = _mapping_value(record, "'insulin' with optional 'reason'", ("insulin",))
            amount = value["insulin"]
            reason = value.get("reason")
            if reason:
                reason = str(reason)
                metadata[DELIVERY_REASON_KEY] = reason
                if reason.lower() == "basal":
                    metadata[DELIVERY_REASON_LEGACY_KEY] = 1
                elif reason.lower() == "bolus":
                    metadata[DELIVERY_REASON_LEGACY_KEY] = 2
        else:
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                expected = (
                    "a numeric category code"
                    if descriptor.value_rule is ValueRule.CATEGORY_CODE
                    else "a numeric amount"
                )
                raise InvalidRecordError(record.data_type, expected)
            amount = value

        return {
            "sampleType": sample_type,
            "startDate": record.start_date,
            "endDate": record.end_date,
            "amount": amount,
            "unit": descriptor.unit if isinstance(descriptor.unit, str) else None,
            "metadata": metadata,
        }


def _mapping_value(
    record: StoreRecord, expected: str, required: tuple[str, ...] = ()
) -> Mapping[str, Any]:
    """Return ``record.value`` as a mapping holding every ``required`` field."""
    value = {} if record.value is None and not required else record.value
    if not isinstance(value, Mapping) or any(value.get(key) is None for key in required):
        raise InvalidRecordError(record.data_type, expected)
    return value
