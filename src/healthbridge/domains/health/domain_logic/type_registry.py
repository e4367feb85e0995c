"""Static mapping from generic data types to HealthKit identifiers and units.

Every generic type is one ``DataTypeDescriptor``. The descriptor carries the
tags the rest of the pipeline dispatches on:

- ``family``      how the resolver expands it into native identifiers
- ``query_kind``  which dispatcher handler reads it
- ``value_rule``  how the normalizer extracts a sample's value
- ``merge_rule``  how the aggregator sums it (None: not aggregatable)

Composite families are found by name prefix (``nutrition.`` members belong
to ``nutrition``), so adding a nutrient is a single table entry.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from healthbridge.domains.health.domain_logic.errors import UnknownDataTypeError


class TypeFamily(str, Enum):
    SIMPLE = "simple"
    COMPOSITE = "composite"
    CORRELATION = "correlation"
    DERIVED = "derived"
    UNSUPPORTED = "unsupported_for_operation"


class QueryKind(str, Enum):
    CHARACTERISTIC = "characteristic"
    WORKOUT = "workout"
    CORRELATION = "correlation"
    SAMPLE = "sample"
    ACTIVITY_SUMMARY = "activity_summary"
    ELECTROCARDIOGRAM = "electrocardiogram"


class ValueRule(str, Enum):
    QUANTITY = "quantity"
    BLOOD_GLUCOSE = "blood_glucose"
    INSULIN = "insulin"
    CATEGORY_CODE = "category_code"


class MergeRule(str, Enum):
    NATIVE_SUM = "native_sum"
    ACTIVITY = "activity"
    NUTRITION = "nutrition"


@dataclass(frozen=True)
class CategoryCode:
    """One row of a category code table."""

    category_type_key: str
    value: str


@dataclass(frozen=True)
class DataTypeDescriptor:
    """A generic data type and everything needed to read, write and sum it."""

    name: str
    native_type: str | None
    unit: str | tuple[str, ...] | None = None
    family: TypeFamily = TypeFamily.SIMPLE
    query_kind: QueryKind = QueryKind.SAMPLE
    value_rule: ValueRule = ValueRule.QUANTITY
    merge_rule: MergeRule | None = None
    counterpart: str | None = None
    components: tuple[str, ...] = ()
    member_prefix: str | None = None
    writable: bool = True
    category_codes: Mapping[int, CategoryCode] = field(default_factory=dict)

    @property
    def units(self) -> list[str]:
        """Unit(s) as a list, the shape correlation queries expect."""
        if self.unit is None:
            return []
        if isinstance(self.unit, tuple):
            return list(self.unit)
        return [self.unit]


# ---------------------------------------------------------------------------
# HealthKit identifiers used outside the table
# ---------------------------------------------------------------------------

HK_DISTANCE_CYCLING = "HKQuantityTypeIdentifierDistanceCycling"
HK_BASAL_ENERGY = "HKQuantityTypeIdentifierBasalEnergyBurned"
HK_SLEEP_ANALYSIS = "HKCategoryTypeIdentifierSleepAnalysis"
HK_WORKOUT_TYPE = "HKWorkoutTypeIdentifier"
HK_BP_SYSTOLIC = "HKQuantityTypeIdentifierBloodPressureSystolic"
HK_BP_DIASTOLIC = "HKQuantityTypeIdentifierBloodPressureDiastolic"
HK_FOOD = "HKCorrelationTypeIdentifierFood"
HK_BLOOD_PRESSURE = "HKCorrelationTypeIdentifierBloodPressure"

NUTRITION_PREFIX = "nutrition."

# Prefixes stripped by format_measure_name, checked in order
MEASURE_NAME_PREFIXES = (
    "HKCategoryTypeIdentifier",
    "HKQuantityTypeIdentifier",
    "HKCharacteristicTypeIdentifier",
    "HKCorrelationTypeIdentifier",
    "HKWorkoutTypeIdentifier",
    "HKWorkoutActivityType",
)

# Activity values written as sleep analysis samples instead of workouts
SLEEP_STORE_VALUES = {
    "sleep": "HKCategoryValueSleepAnalysisAsleep",
    "sleep.light": "HKCategoryValueSleepAnalysisAsleep",
    "sleep.deep": "HKCategoryValueSleepAnalysisAsleep",
    "sleep.rem": "HKCategoryValueSleepAnalysisAsleep",
    "sleep.inBed": "HKCategoryValueSleepAnalysisInBed",
    "sleep.awake": "HKCategoryValueSleepAnalysisAwake",
}


def _codes(prefix: str, rows: Iterable[tuple[int, str, str]]) -> Mapping[int, CategoryCode]:
    return MappingProxyType({
        code: CategoryCode(category_type_key=prefix + suffix, value=label)
        for code, suffix, label in rows
    })


_SEVERITY_CODES = _codes("HKCategoryValueSeverity", [
    (0, "Unspecified", "unspecified"),
    (1, "NotPresent", "not_present"),
    (2, "Mild", "mild"),
    (3, "Moderate", "moderate"),
    (4, "Severe", "severe"),
])


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------

def _quantity(name: str, suffix: str, unit: str | None, **kw) -> DataTypeDescriptor:
    return DataTypeDescriptor(
        name=name, native_type="HKQuantityTypeIdentifier" + suffix, unit=unit, **kw
    )


def _category(name: str, suffix: str, codes: Mapping[int, CategoryCode], **kw) -> DataTypeDescriptor:
    return DataTypeDescriptor(
        name=name,
        native_type="HKCategoryTypeIdentifier" + suffix,
        value_rule=ValueRule.CATEGORY_CODE,
        category_codes=codes,
        **kw,
    )


def _nutrient(name: str, suffix: str, unit: str) -> DataTypeDescriptor:
    return _quantity(NUTRITION_PREFIX + name, "Dietary" + suffix, unit, merge_rule=MergeRule.NATIVE_SUM)


_SUM = MergeRule.NATIVE_SUM

DATA_TYPES: tuple[DataTypeDescriptor, ...] = (
    # Activity and energy
    _quantity("steps", "StepCount", "count", merge_rule=_SUM),
    _quantity("stairs", "FlightsClimbed", "count"),
    _quantity(
        "distance", "DistanceWalkingRunning", "m",
        family=TypeFamily.DERIVED, counterpart=HK_DISTANCE_CYCLING, merge_rule=_SUM,
    ),
    _quantity("distance.cycling", "DistanceCycling", "m", merge_rule=_SUM),
    _quantity("distance.swimming", "DistanceSwimming", "m", merge_rule=_SUM),
    _quantity(
        "calories", "ActiveEnergyBurned", "kcal",
        family=TypeFamily.DERIVED, counterpart=HK_BASAL_ENERGY, merge_rule=_SUM,
    ),
    _quantity("calories.active", "ActiveEnergyBurned", "kcal", merge_rule=_SUM),
    _quantity("calories.basal", "BasalEnergyBurned", "kcal", merge_rule=_SUM),
    _quantity("appleExerciseTime", "AppleExerciseTime", "min", merge_rule=_SUM),
    DataTypeDescriptor(
        name="activity",
        native_type=HK_WORKOUT_TYPE,
        unit="activityType",
        family=TypeFamily.DERIVED,
        query_kind=QueryKind.WORKOUT,
        merge_rule=MergeRule.ACTIVITY,
        counterpart=HK_SLEEP_ANALYSIS,
    ),
    DataTypeDescriptor(
        name="workouts",
        native_type=HK_WORKOUT_TYPE,
        unit="activityType",
        query_kind=QueryKind.WORKOUT,
        merge_rule=MergeRule.ACTIVITY,
    ),
    _category("sleep", "SleepAnalysis", _codes("HKCategoryValueSleepAnalysis", [
        (0, "InBed", "sleep.inBed"),
        (1, "AsleepUnspecified", "sleep"),
        (2, "Awake", "sleep.awake"),
        (3, "AsleepCore", "sleep.light"),
        (4, "AsleepDeep", "sleep.deep"),
        (5, "AsleepREM", "sleep.rem"),
    ])),
    DataTypeDescriptor(
        name="mindfulness", native_type="HKCategoryTypeIdentifierMindfulSession", unit="sec",
    ),
    DataTypeDescriptor(
        name="activitySummary",
        native_type="HKActivitySummaryTypeIdentifier",
        query_kind=QueryKind.ACTIVITY_SUMMARY,
        writable=False,
    ),
    # Body measurements and vitals
    _quantity("height", "Height", "m"),
    _quantity("weight", "BodyMass", "kg"),
    _quantity("bmi", "BodyMassIndex", "count"),
    _quantity("fat_percentage", "BodyFatPercentage", "%"),
    _quantity("waist_circumference", "WaistCircumference", "m"),
    _quantity("body_temperature", "BodyTemperature", "degC"),
    _quantity("heart_rate", "HeartRate", "count/min"),
    _quantity("heart_rate.resting", "RestingHeartRate", "count/min"),
    _quantity("heart_rate.variability", "HeartRateVariabilitySDNN", "ms"),
    _quantity("resp_rate", "RespiratoryRate", "count/min"),
    _quantity("oxygen_saturation", "OxygenSaturation", "%"),
    _quantity("UV_exposure", "UVExposure", "count"),
    _quantity("blood_glucose", "BloodGlucose", "mmol/L", value_rule=ValueRule.BLOOD_GLUCOSE),
    _quantity("insulin", "InsulinDelivery", "IU", value_rule=ValueRule.INSULIN),
    DataTypeDescriptor(
        name="blood_pressure",
        native_type=HK_BLOOD_PRESSURE,
        unit="mmHg",
        family=TypeFamily.CORRELATION,
        query_kind=QueryKind.CORRELATION,
        components=(HK_BP_SYSTOLIC, HK_BP_DIASTOLIC),
    ),
    DataTypeDescriptor(
        name="electrocardiogram",
        native_type="HKDataTypeIdentifierElectrocardiogram",
        query_kind=QueryKind.ELECTROCARDIOGRAM,
        writable=False,
    ),
    # Characteristics: always readable, never writable
    DataTypeDescriptor(
        name="gender",
        native_type="HKCharacteristicTypeIdentifierBiologicalSex",
        family=TypeFamily.UNSUPPORTED,
        query_kind=QueryKind.CHARACTERISTIC,
        writable=False,
    ),
    DataTypeDescriptor(
        name="date_of_birth",
        native_type="HKCharacteristicTypeIdentifierDateOfBirth",
        family=TypeFamily.UNSUPPORTED,
        query_kind=QueryKind.CHARACTERISTIC,
        writable=False,
    ),
    # Coded category types
    _category("menstrual_flow", "MenstrualFlow", _codes("HKCategoryValueMenstrualFlow", [
        (1, "Unspecified", "unspecified"),
        (2, "Light", "light"),
        (3, "Medium", "medium"),
        (4, "Heavy", "heavy"),
        (5, "None", "none"),
    ])),
    _category("ovulation_test", "OvulationTestResult", _codes("HKCategoryValueOvulationTestResult", [
        (1, "Negative", "negative"),
        (2, "LuteinizingHormoneSurge", "positive"),
        (3, "Indeterminate", "indeterminate"),
        (4, "EstrogenSurge", "estrogen_surge"),
    ])),
    _category("cervical_mucus", "CervicalMucusQuality", _codes("HKCategoryValueCervicalMucusQuality", [
        (1, "Dry", "dry"),
        (2, "Sticky", "sticky"),
        (3, "Creamy", "creamy"),
        (4, "Watery", "watery"),
        (5, "EggWhite", "egg_white"),
    ])),
    _category("symptoms.headache", "Headache", _SEVERITY_CODES),
    # Nutrition: the correlation plus one entry per nutrient
    DataTypeDescriptor(
        name="nutrition",
        native_type=HK_FOOD,
        unit=("g", "ml", "kcal"),
        family=TypeFamily.COMPOSITE,
        query_kind=QueryKind.CORRELATION,
        merge_rule=MergeRule.NUTRITION,
        member_prefix=NUTRITION_PREFIX,
    ),
    _nutrient("calories", "EnergyConsumed", "kcal"),
    _nutrient("fat.total", "FatTotal", "g"),
    _nutrient("fat.saturated", "FatSaturated", "g"),
    _nutrient("fat.polyunsaturated", "FatPolyunsaturated", "g"),
    _nutrient("fat.monounsaturated", "FatMonounsaturated", "g"),
    _nutrient("cholesterol", "Cholesterol", "mg"),
    _nutrient("sodium", "Sodium", "mg"),
    _nutrient("potassium", "Potassium", "mg"),
    _nutrient("carbs.total", "Carbohydrates", "g"),
    _nutrient("dietary_fiber", "Fiber", "g"),
    _nutrient("sugar", "Sugar", "g"),
    _nutrient("protein", "Protein", "g"),
    _nutrient("vitamin_a", "VitaminA", "mcg"),
    _nutrient("vitamin_c", "VitaminC", "mg"),
    _nutrient("vitamin_d", "VitaminD", "mcg"),
    _nutrient("calcium", "Calcium", "mg"),
    _nutrient("iron", "Iron", "mg"),
    _nutrient("water", "Water", "ml"),
    _nutrient("caffeine", "Caffeine", "mg"),
)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TypeRegistry:
    """Read-only lookup over a set of descriptors.

    Built once and passed by reference to every component::

        registry = default_registry()
        registry.get("steps").native_type
        # 'HKQuantityTypeIdentifierStepCount'
    """

    def __init__(self, descriptors: Iterable[DataTypeDescriptor]) -> None:
        table: dict[str, DataTypeDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in table:
                raise ValueError(f"Duplicate data type: {descriptor.name!r}")
            table[descriptor.name] = descriptor
        self._types: Mapping[str, DataTypeDescriptor] = MappingProxyType(table)

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[DataTypeDescriptor]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)

    def lookup(self, name: str) -> DataTypeDescriptor | None:
        """Return the descriptor for ``name`` or None. Case-exact."""
        return self._types.get(name)

    def get(self, name: str) -> DataTypeDescriptor:
        """Return the descriptor for ``name``.

        Raises:
            UnknownDataTypeError: If the name is not registered.
        """
        descriptor = self._types.get(name)
        if descriptor is None:
            raise UnknownDataTypeError(name)
        return descriptor

    def members(self, prefix: str) -> list[DataTypeDescriptor]:
        """Descriptors whose name starts with ``prefix``, in table order."""
        return [d for d in self._types.values() if d.name.startswith(prefix)]

    def name_for_native(self, native_type: str, prefix: str = "") -> str | None:
        """Reverse lookup: first generic name under ``prefix`` mapping to ``native_type``."""
        for descriptor in self.members(prefix):
            if descriptor.native_type == native_type:
                return descriptor.name
        return None

    def available_data_types(self) -> list[dict[str, str]]:
        """All generic types with their native equivalent and unit, sorted by name."""
        result = []
        for descriptor in self._types.values():
            unit = descriptor.unit
            result.append({
                "data_type": descriptor.name,
                "native_equivalent": descriptor.native_type or "",
                "unit": ", ".join(unit) if isinstance(unit, tuple) else (unit or "N/A"),
            })
        return sorted(result, key=lambda entry: entry["data_type"])


@lru_cache(maxsize=1)
def default_registry() -> TypeRegistry:
    """The built-in HealthKit registry, created on first use."""
    return TypeRegistry(DATA_TYPES)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_WORD = re.compile(r"[A-Z][a-z]+")


def format_measure_name(native_type: str | None) -> str:
    """Human-readable name for a native identifier.

    ``HKQuantityTypeIdentifierStepCount`` -> ``Step Count``
    """
    if not native_type:
        return ""
    for prefix in MEASURE_NAME_PREFIXES:
        if native_type.startswith(prefix):
            return " ".join(_WORD.findall(native_type[len(prefix):]))
    return ""


def convert_from_grams(to_unit: str | None, quantity: float) -> float:
    """Convert grams to ``to_unit``. Non-mass units pass through unchanged."""
    if to_unit == "mcg":
        return quantity * 1_000_000
    if to_unit == "mg":
        return quantity * 1000
    if to_unit == "kg":
        return quantity / 1000
    return quantity


def convert_to_grams(from_unit: str | None, quantity: float) -> float:
    """Convert ``from_unit`` to grams. Non-mass units pass through unchanged."""
    if from_unit == "mcg":
        return quantity / 1_000_000
    if from_unit == "mg":
        return quantity / 1000
    if from_unit == "kg":
        return quantity * 1000
    return quantity
