"""Reshape native HealthKit records into the uniform output schema.

Each record type has one entry point:

- ``normalize_sample``        quantity and category samples
- ``normalize_workout``       workouts from find_workouts
- ``normalize_sleep``         sleep analysis samples appended to ``activity``
- ``normalize_correlation``   blood pressure and food correlations
- ``normalize_activity_summary`` / ``normalize_electrocardiogram``
- ``characteristic_sample``   gender and date of birth

Field extraction never raises on missing attribution; absent source and
device fields become empty strings.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable

from healthbridge.domains.health.domain_logic.health_models import (
    ActivitySummary,
    CorrelationSample,
    ElectrocardiogramSample,
    HealthSample,
    SourceAttribution,
    WorkoutSample,
    parse_date,
)
from healthbridge.domains.health.domain_logic.type_registry import (
    HK_BP_DIASTOLIC,
    HK_BP_SYSTOLIC,
    HK_SLEEP_ANALYSIS,
    HK_WORKOUT_TYPE,
    NUTRITION_PREFIX,
    DataTypeDescriptor,
    TypeRegistry,
    ValueRule,
    convert_from_grams,
    format_measure_name,
)

HEALTH_SOURCE_NAME = "Health"
HEALTH_SOURCE_BUNDLE_ID = "com.apple.Health"

# Legacy numeric metadata keys and their specific string replacements
MEAL_TIME_LEGACY_KEY = "HKBloodGlucoseMealTime"
MEAL_TIME_KEY = "HKMetadataKeyBloodGlucoseMealTime"
SLEEP_TIME_KEY = "HKMetadataKeyBloodGlucoseSleepTime"
GLUCOSE_SOURCE_KEY = "HKMetadataKeyBloodGlucoseSource"
DELIVERY_REASON_LEGACY_KEY = "HKInsulinDeliveryReason"
DELIVERY_REASON_KEY = "HKMetadataKeyInsulinDeliveryReason"

FOOD_METADATA_KEYS = (
    ("HKFoodType", "item"),
    ("HKFoodMeal", "meal_type"),
    ("HKFoodBrandName", "brand_name"),
)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _text(value: Any) -> str:
    if value is None or value == "":
        return ""
    return str(value)


def _int_or_none(value: Any) -> int | None:
    """Truncate to int; falsy or unparsable values become None."""
    if not value:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _sample_id(raw: dict[str, Any], native_type: str, start: datetime, end: datetime) -> str:
    """The record's UUID, or a deterministic one when the binding omits it."""
    native_id = raw.get("UUID") or raw.get("id")
    if native_id:
        return str(native_id)
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{native_type}/{start.isoformat()}/{end.isoformat()}"))


def format_os_version(raw: dict[str, Any]) -> str:
    """Rebuild ``major.minor.patch`` from its parts.

    A part is emitted only when present. A numeric patch (0 included)
    forces all three positions.
    """
    patch_numeric = _is_number(raw.get("sourceOSVersionPatch"))
    version = ""
    if raw.get("sourceOSVersionMajor") or patch_numeric:
        version += _text(raw.get("sourceOSVersionMajor"))
    if raw.get("sourceOSVersionMinor") or patch_numeric:
        version += "." + _text(raw.get("sourceOSVersionMinor"))
    if raw.get("sourceOSVersionPatch") or patch_numeric:
        version += "." + _text(raw.get("sourceOSVersionPatch"))
    return version


def build_source(raw: dict[str, Any]) -> SourceAttribution:
    return SourceAttribution(
        source_name=_text(raw.get("sourceName")),
        source_version=_text(raw.get("sourceVersion")),
        source_bundle_id=_text(raw.get("sourceBundleId")),
        source_product_type=_text(raw.get("sourceProductType")),
        source_os_version=format_os_version(raw),
        device_name=_text(raw.get("deviceName")),
        device_model=_text(raw.get("deviceModel")),
        device_manufacturer=_text(raw.get("deviceManufacturer")),
        device_local_identifier=_text(raw.get("deviceLocalIdentifier")),
        device_hardware_version=_text(raw.get("deviceHardwareVersion")),
        device_software_version=_text(raw.get("deviceSoftwareVersion")),
        device_firmware_version=_text(raw.get("deviceFirmwareVersion")),
        device_fda_udi=_text(raw.get("UDI")),
    )


def native_measure_name(raw: dict[str, Any]) -> str:
    return (
        raw.get("categoryType.identifier")
        or raw.get("quantityType")
        or raw.get("correlationType")
        or ""
    )


# ---------------------------------------------------------------------------
# Value rules
# ---------------------------------------------------------------------------

def _blood_glucose_value(raw: dict[str, Any], _: DataTypeDescriptor) -> tuple[Any, str | None]:
    metadata = raw.get("metadata") or {}
    value: dict[str, Any] = {"glucose": raw.get("quantity")}
    if metadata.get(MEAL_TIME_LEGACY_KEY):
        value["meal"] = "before_meal" if metadata[MEAL_TIME_LEGACY_KEY] == 1 else "after_meal"
    if metadata.get(MEAL_TIME_KEY):
        value["meal"] = metadata[MEAL_TIME_KEY]
    if metadata.get(SLEEP_TIME_KEY):
        value["sleep"] = metadata[SLEEP_TIME_KEY]
    if metadata.get(GLUCOSE_SOURCE_KEY):
        value["source"] = metadata[GLUCOSE_SOURCE_KEY]
    return value, None


def _insulin_value(raw: dict[str, Any], _: DataTypeDescriptor) -> tuple[Any, str | None]:
    metadata = raw.get("metadata") or {}
    value: dict[str, Any] = {"insulin": raw.get("quantity")}
    if metadata.get(DELIVERY_REASON_LEGACY_KEY):
        value["reason"] = "basal" if metadata[DELIVERY_REASON_LEGACY_KEY] == 1 else "bolus"
    if metadata.get(DELIVERY_REASON_KEY):
        value["reason"] = metadata[DELIVERY_REASON_KEY]
    return value, None


def _category_code_value(raw: dict[str, Any], descriptor: DataTypeDescriptor) -> tuple[Any, str | None]:
    code = raw.get("value")
    if not _is_number(code):
        return None, None
    if isinstance(code, float) and not code.is_integer():
        return code, None
    entry = descriptor.category_codes.get(int(code))
    if entry is None:
        return code, None
    return entry.category_type_key, entry.value


def _quantity_value(raw: dict[str, Any], _: DataTypeDescriptor) -> tuple[Any, str | None]:
    value = None
    for key in ("quantity", "value"):
        candidate = raw.get(key)
        if isinstance(candidate, str) or _is_number(candidate):
            value = candidate
    return value, None


_VALUE_RULES: dict[ValueRule, Callable[[dict[str, Any], DataTypeDescriptor], tuple[Any, str | None]]] = {
    ValueRule.BLOOD_GLUCOSE: _blood_glucose_value,
    ValueRule.INSULIN: _insulin_value,
    ValueRule.CATEGORY_CODE: _category_code_value,
    ValueRule.QUANTITY: _quantity_value,
}


# ---------------------------------------------------------------------------
# Record transforms
# ---------------------------------------------------------------------------

def normalize_sample(
    raw: dict[str, Any],
    descriptor: DataTypeDescriptor,
    requested_unit: str | None = None,
) -> HealthSample:
    """Normalize a quantity or category sample using the descriptor's value rule."""
    start = parse_date(raw.get("startDate"))
    end = parse_date(raw.get("endDate"))
    native_name = native_measure_name(raw)
    value, result = _VALUE_RULES[descriptor.value_rule](raw, descriptor)
    return HealthSample(
        id=_sample_id(raw, native_name or descriptor.native_type or "", start, end),
        start_date=start,
        end_date=end,
        value=value,
        unit=raw.get("unit") or requested_unit,
        measure_name=format_measure_name(native_name),
        native_measure_name=native_name,
        result=result,
        source=build_source(raw),
        metadata=dict(raw.get("metadata") or {}),
    )


def normalize_workout(raw: dict[str, Any]) -> WorkoutSample:
    start = parse_date(raw.get("startDate"))
    end = parse_date(raw.get("endDate"))
    activity_type = raw.get("activityType") or ""
    native_activity = raw.get("HKactivityType") or ""
    energy = _int_or_none(raw.get("energy"))
    distance = _int_or_none(raw.get("distance"))
    swim_strokes = _int_or_none(raw.get("swimStrokeValue"))
    flights = _int_or_none(raw.get("flightsClimbedValue"))
    return WorkoutSample(
        id=_sample_id(raw, HK_WORKOUT_TYPE, start, end),
        start_date=start,
        end_date=end,
        value=activity_type,
        unit="activityType",
        measure_name=activity_type,
        native_measure_name=HK_WORKOUT_TYPE,
        source=build_source(raw),
        metadata=dict(raw.get("metadata") or {}),
        activity_name=format_measure_name(native_activity),
        native_activity_name=native_activity,
        calories=energy,
        energy_unit=raw.get("energyUnit") if energy is not None else None,
        distance=distance,
        distance_unit=raw.get("distanceUnit") if distance is not None else None,
        duration=raw.get("duration") or "",
        duration_unit=raw.get("durationUnit") or "",
        swim_stroke_value=swim_strokes,
        swim_stroke_unit=raw.get("swimStrokeUnit") if swim_strokes is not None else None,
        flights_climbed_value=flights,
        flights_climbed_unit=raw.get("flightsClimbedUnit") if flights is not None else None,
        workout_events=list(raw.get("workoutEvents") or []),
    )


def sleep_label(code: Any) -> str:
    """0 -> in bed, 1 -> asleep, anything else -> awake."""
    if code == 0:
        return "sleep.inBed"
    if code == 1:
        return "sleep"
    return "sleep.awake"


def normalize_sleep(raw: dict[str, Any]) -> HealthSample:
    start = parse_date(raw.get("startDate"))
    end = parse_date(raw.get("endDate"))
    return HealthSample(
        id=_sample_id(raw, HK_SLEEP_ANALYSIS, start, end),
        start_date=start,
        end_date=end,
        value=sleep_label(raw.get("value")),
        unit="activityType",
        measure_name=format_measure_name(HK_SLEEP_ANALYSIS),
        native_measure_name=HK_SLEEP_ANALYSIS,
        source=SourceAttribution(
            source_name=_text(raw.get("sourceName")),
            source_bundle_id=_text(raw.get("sourceBundleId")),
        ),
    )


def _nutrition_value(raw: dict[str, Any], registry: TypeRegistry) -> dict[str, Any]:
    metadata = raw.get("metadata") or {}
    value: dict[str, Any] = {}
    for key, field_name in FOOD_METADATA_KEYS:
        if metadata.get(key):
            value[field_name] = metadata[key]
    nutrients: dict[str, float] = {}
    for sub in raw.get("samples") or []:
        name = registry.name_for_native(sub.get("sampleType", ""), NUTRITION_PREFIX)
        if name is None:
            continue
        amount = sub.get("value", sub.get("quantity"))
        nutrients[name] = convert_from_grams(registry.get(name).unit, amount)
    value["nutrients"] = nutrients
    return value


def _blood_pressure_value(raw: dict[str, Any]) -> dict[str, Any]:
    value: dict[str, Any] = {}
    for sub in raw.get("samples") or []:
        amount = sub.get("value", sub.get("quantity"))
        if sub.get("sampleType") == HK_BP_SYSTOLIC:
            value["systolic"] = amount
        elif sub.get("sampleType") == HK_BP_DIASTOLIC:
            value["diastolic"] = amount
    return value


def normalize_correlation(
    raw: dict[str, Any],
    descriptor: DataTypeDescriptor,
    registry: TypeRegistry,
) -> CorrelationSample:
    """Expand a correlation's sub-samples into ``value``.

    Food correlations yield ``{item, meal_type, brand_name, nutrients}`` with
    each nutrient converted from grams to its registered unit. Blood
    pressure yields ``{systolic, diastolic}``.
    """
    start = parse_date(raw.get("startDate"))
    end = parse_date(raw.get("endDate"))
    native_name = native_measure_name(raw) or descriptor.native_type or ""
    if descriptor.name == "nutrition":
        value, unit = _nutrition_value(raw, registry), "nutrition"
    else:
        value, unit = _blood_pressure_value(raw), "mmHg"
    return CorrelationSample(
        id=_sample_id(raw, native_name, start, end),
        start_date=start,
        end_date=end,
        value=value,
        unit=unit,
        measure_name=format_measure_name(native_name),
        native_measure_name=native_name,
        source=build_source(raw),
        metadata=dict(raw.get("metadata") or {}),
    )


def normalize_activity_summary(raw: dict[str, Any]) -> ActivitySummary:
    return ActivitySummary(
        start_date=raw.get("startDate"),
        active_energy=raw.get("activeEnergy") or None,
        active_energy_goal=raw.get("activeEnergyGoal") or None,
        apple_move_time=raw.get("appleMoveTime") or None,
        apple_move_time_goal=raw.get("appleMoveTimeGoal") or None,
        apple_stand_hours=raw.get("appleStandHours") or None,
        apple_stand_hours_goal=raw.get("appleStandHoursGoal") or None,
        apple_exercise_time=raw.get("appleExerciseTime") or None,
        apple_exercise_time_goal=raw.get("appleExerciseTimeGoal") or None,
    )


def normalize_electrocardiogram(raw: dict[str, Any]) -> ElectrocardiogramSample:
    start = parse_date(raw.get("startDate"))
    end = parse_date(raw.get("endDate"))
    return ElectrocardiogramSample(
        id=_text(raw.get("id") or raw.get("UUID")),
        start_date=start,
        end_date=end,
        algorithm_version=raw.get("algorithmVersion") or "",
        average_heart_rate=raw.get("averageHeartRate") or "",
        classification=raw.get("classification") or "",
        sampling_frequency=raw.get("samplingFrequency") or "",
        source=build_source(raw),
    )


def characteristic_sample(
    descriptor: DataTypeDescriptor,
    value: Any,
    start: datetime,
    end: datetime,
) -> HealthSample:
    """Wrap a characteristic read as a sample covering the requested range."""
    if descriptor.name == "date_of_birth":
        born = parse_date(value)
        value = {"day": born.day, "month": born.month, "year": born.year}
    native = descriptor.native_type or ""
    return HealthSample(
        id=_sample_id({}, native, start, end),
        start_date=start,
        end_date=end,
        value=value,
        measure_name=format_measure_name(native),
        native_measure_name=native,
        source=SourceAttribution(
            source_name=HEALTH_SOURCE_NAME,
            source_bundle_id=HEALTH_SOURCE_BUNDLE_ID,
        ),
    )
