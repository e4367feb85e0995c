"""Shared test fixtures for healthbridge tests."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HEALTHKIT_BRIDGE_URL", "")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from healthbridge.domains.health.connectors.memory_store import InMemoryHealthStore  # noqa: E402
from healthbridge.domains.health.domain_logic.health_bridge import HealthBridge  # noqa: E402
from healthbridge.domains.health.domain_logic.type_registry import (  # noqa: E402
    TypeRegistry,
    default_registry,
)

STEPS = "HKQuantityTypeIdentifierStepCount"


def make_quantity_sample(
    quantity_type: str,
    quantity: float,
    start: datetime,
    end: datetime | None = None,
    unit: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Create a raw quantity record in the native binding's shape."""
    return {
        "UUID": extra.pop("uuid", f"{quantity_type}-{start.isoformat()}"),
        "quantityType": quantity_type,
        "quantity": quantity,
        "unit": unit,
        "startDate": start,
        "endDate": end or start,
        "sourceName": "Watch",
        "sourceBundleId": "com.apple.health.watch",
        **extra,
    }


def make_workout(
    activity_type: str,
    start: datetime,
    end: datetime,
    energy: float | None = None,
    distance: float | None = None,
) -> dict[str, Any]:
    """Create a raw workout record as returned by find_workouts."""
    return {
        "UUID": f"workout-{start.isoformat()}",
        "activityType": activity_type,
        "HKactivityType": "HKWorkoutActivityType" + activity_type.title(),
        "startDate": start,
        "endDate": end,
        "energy": energy,
        "energyUnit": "kcal",
        "distance": distance,
        "distanceUnit": "m",
        "duration": (end - start).total_seconds(),
        "durationUnit": "s",
    }


@pytest.fixture
def registry() -> TypeRegistry:
    return default_registry()


@pytest.fixture
def memory_store() -> InMemoryHealthStore:
    return InMemoryHealthStore(gender="female", date_of_birth="1990-04-12")


@pytest.fixture
def bridge(memory_store: InMemoryHealthStore) -> HealthBridge:
    return HealthBridge(memory_store)


# ---------------------------------------------------------------------------
# Mock fastmcp client for the HealthKit bridge connector
# ---------------------------------------------------------------------------

@dataclass
class _TextBlock:
    """Mimics fastmcp content block structure."""

    type: str
    text: str


class MockMCPClient:
    """Fake fastmcp.Client returning canned envelopes per tool name.

    ``responses`` maps a tool name to the envelope dict to return as a JSON
    text block. Unknown tools answer ``{"status": "ok", "result": None}``.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = responses or {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._raise_on_call: Exception | None = None

    def raise_on_call(self, exc: Exception) -> None:
        self._raise_on_call = exc

    async def __aenter__(self) -> MockMCPClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> list[Any]:
        self.calls.append((tool_name, arguments))
        if self._raise_on_call:
            raise self._raise_on_call
        envelope = self.responses.get(tool_name, {"status": "ok", "result": None})
        return [_TextBlock(type="text", text=json.dumps(envelope))]


@pytest.fixture
def mock_mcp_client() -> MockMCPClient:
    return MockMCPClient()
