"""Native health store connectors: the boundary this layer reads and writes through."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class NativeHealthStore(Protocol):
    """Per-call primitives exposed by the native HealthKit binding.

    Records come back in the binding's own shape: dicts with ``UUID``,
    ``startDate``, ``endDate``, ``quantity`` or ``value``, ``unit``,
    ``quantityType`` / ``categoryType.identifier`` / ``correlationType``,
    ``metadata``, and ``source*`` / ``device*`` attribution keys. The
    normalizer is responsible for turning them into ``HealthSample`` objects.
    """

    async def is_available(self) -> bool:
        """Whether the health store exists on this device."""
        ...

    async def request_authorization(
        self, read_types: list[str], write_types: list[str]
    ) -> None:
        """Prompt for read/write access to the given native identifiers."""
        ...

    async def check_auth_status(self, native_type: str) -> str:
        """'authorized', 'denied' or 'undetermined' for one identifier."""
        ...

    async def read_gender(self) -> str:
        ...

    async def read_date_of_birth(self) -> Any:
        """Date of birth as a date or ISO 8601 string."""
        ...

    async def find_workouts(
        self, start_date: datetime, end_date: datetime
    ) -> list[dict[str, Any]]:
        """All workouts. The binding may ignore the date range."""
        ...

    async def query_sample_type(
        self,
        sample_type: str,
        start_date: datetime,
        end_date: datetime,
        unit: str | None = None,
    ) -> list[dict[str, Any]]:
        ...

    async def query_correlation_type(
        self,
        correlation_type: str,
        start_date: datetime,
        end_date: datetime,
        units: list[str],
    ) -> list[dict[str, Any]]:
        """Correlations with their sub-samples under ``samples``."""
        ...

    async def sum_quantity_type(
        self,
        sample_type: str,
        start_date: datetime,
        end_date: datetime,
        unit: str | None = None,
    ) -> float:
        ...

    async def query_sample_type_aggregated(
        self,
        sample_type: str,
        start_date: datetime,
        end_date: datetime,
        aggregation: str,
        unit: str | None = None,
    ) -> list[dict[str, Any]]:
        """Per-bucket sums: dicts with ``startDate``, ``endDate``, ``quantity``."""
        ...

    async def query_activity_summary(
        self, start_date: datetime, end_date: datetime
    ) -> list[dict[str, Any]]:
        ...

    async def query_electrocardiogram_samples(
        self, start_date: datetime, end_date: datetime
    ) -> list[dict[str, Any]]:
        ...

    async def save_sample(self, sample: dict[str, Any]) -> None:
        ...

    async def save_workout(self, workout: dict[str, Any]) -> None:
        ...

    async def save_correlation(self, correlation: dict[str, Any]) -> None:
        ...

    async def delete_samples(
        self, sample_type: str, start_date: datetime, end_date: datetime
    ) -> None:
        ...
