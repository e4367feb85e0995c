"""NativeHealthStore over MCP: calls a device-side HealthKit bridge server.

Each store primitive maps to one ``healthkit_<primitive>`` tool on the
bridge. Dates travel as ISO 8601 strings; records come back in the
binding's raw shape and are normalized by the domain layer.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)

TOOL_PREFIX = "healthkit_"


class HealthKitBridgeClient:
    """Client for a HealthKit bridge MCP server.

    Usage::

        from fastmcp import Client
        mcp = Client("http://127.0.0.1:8010/mcp")
        store = HealthKitBridgeClient(mcp)

        bridge = HealthBridge(store)
    """

    def __init__(self, mcp_client: Any) -> None:
        """Initialise with a fastmcp.Client (or compatible)."""
        self._client = mcp_client

    # ------------------------------------------------------------------
    # Availability and authorization
    # ------------------------------------------------------------------

    async def is_available(self) -> bool:
        return bool(await self._call_tool("is_available", {}))

    async def request_authorization(
        self, read_types: list[str], write_types: list[str]
    ) -> None:
        await self._call_tool(
            "request_authorization",
            {"read_types": list(read_types), "write_types": list(write_types)},
        )

    async def check_auth_status(self, native_type: str) -> str:
        return str(await self._call_tool("check_auth_status", {"native_type": native_type}))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read_gender(self) -> str:
        return str(await self._call_tool("read_gender", {}))

    async def read_date_of_birth(self) -> Any:
        return await self._call_tool("read_date_of_birth", {})

    async def find_workouts(
        self, start_date: datetime, end_date: datetime
    ) -> list[dict[str, Any]]:
        return await self._call_list("find_workouts", _range(start_date, end_date))

    async def query_sample_type(
        self,
        sample_type: str,
        start_date: datetime,
        end_date: datetime,
        unit: str | None = None,
    ) -> list[dict[str, Any]]:
        args = {"sample_type": sample_type, **_range(start_date, end_date)}
        if unit is not None:
            args["unit"] = unit
        return await self._call_list("query_sample_type", args)

    async def query_correlation_type(
        self,
        correlation_type: str,
        start_date: datetime,
        end_date: datetime,
        units: list[str],
    ) -> list[dict[str, Any]]:
        args = {
            "correlation_type": correlation_type,
            "units": list(units),
            **_range(start_date, end_date),
        }
        return await self._call_list("query_correlation_type", args)

    async def sum_quantity_type(
        self,
        sample_type: str,
        start_date: datetime,
        end_date: datetime,
        unit: str | None = None,
    ) -> float:
        args = {"sample_type": sample_type, **_range(start_date, end_date)}
        if unit is not None:
            args["unit"] = unit
        result = await self._call_tool("sum_quantity_type", args)
        if not isinstance(result, (int, float)) or isinstance(result, bool):
            raise HealthKitResponseError(
                f"Expected a number from {TOOL_PREFIX}sum_quantity_type, "
                f"got {type(result).__name__}"
            )
        return float(result)

    async def query_sample_type_aggregated(
        self,
        sample_type: str,
        start_date: datetime,
        end_date: datetime,
        aggregation: str,
        unit: str | None = None,
    ) -> list[dict[str, Any]]:
        args = {
            "sample_type": sample_type,
            "aggregation": aggregation,
            **_range(start_date, end_date),
        }
        if unit is not None:
            args["unit"] = unit
        return await self._call_list("query_sample_type_aggregated", args)

    async def query_activity_summary(
        self, start_date: datetime, end_date: datetime
    ) -> list[dict[str, Any]]:
        return await self._call_list("query_activity_summary", _range(start_date, end_date))

    async def query_electrocardiogram_samples(
        self, start_date: datetime, end_date: datetime
    ) -> list[dict[str, Any]]:
        return await self._call_list(
            "query_electrocardiogram_samples", _range(start_date, end_date)
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save_sample(self, sample: dict[str, Any]) -> None:
        await self._call_tool("save_sample", {"sample": _serialize(sample)})

    async def save_workout(self, workout: dict[str, Any]) -> None:
        await self._call_tool("save_workout", {"workout": _serialize(workout)})

    async def save_correlation(self, correlation: dict[str, Any]) -> None:
        await self._call_tool("save_correlation", {"correlation": _serialize(correlation)})

    async def delete_samples(
        self, sample_type: str, start_date: datetime, end_date: datetime
    ) -> None:
        await self._call_tool(
            "delete_samples", {"sample_type": sample_type, **_range(start_date, end_date)}
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call_list(
        self, primitive: str, arguments: dict[str, Any]
    ) -> list[dict[str, Any]]:
        result = await self._call_tool(primitive, arguments)
        if result is None:
            return []
        if not isinstance(result, list):
            raise HealthKitResponseError(
                f"Expected a list from {TOOL_PREFIX}{primitive}, got {type(result).__name__}"
            )
        return result

    async def _call_tool(self, primitive: str, arguments: dict[str, Any]) -> Any:
        """Call one bridge tool and return the ``result`` of its envelope.

        The bridge answers ``{"status": "ok", "result": ...}`` or
        ``{"status": "error", "error": ...}``, either as a JSON text block
        or as structured data.
        """
        tool_name = f"{TOOL_PREFIX}{primitive}"
        logger.debug("Calling HealthKit bridge tool %s", tool_name)

        try:
            async with self._client:
                result = await self._client.call_tool(tool_name, arguments)
        except Exception:
            logger.exception("Failed to call HealthKit bridge tool %s", tool_name)
            raise HealthKitConnectionError(
                f"Failed to call HealthKit bridge tool '{tool_name}'. "
                "Is the HealthKit bridge running?"
            ) from None

        if not result:
            raise HealthKitResponseError(f"Empty response from {tool_name}")

        payload = _extract_payload(result)
        if payload is None:
            raise HealthKitResponseError(f"No usable content in response from {tool_name}")

        if isinstance(payload, str):
            try:
                parsed: Any = json.loads(payload)
            except (json.JSONDecodeError, TypeError) as exc:
                raise HealthKitResponseError(f"Invalid JSON from {tool_name}: {exc}") from exc
        else:
            parsed = payload

        if not isinstance(parsed, dict):
            raise HealthKitResponseError(
                f"Expected JSON object from {tool_name}, got {type(parsed).__name__}"
            )

        if parsed.get("status") == "error":
            raise HealthKitBridgeError(
                f"HealthKit bridge returned error: {_format_error(parsed.get('error'))}"
            )
        if parsed.get("status") != "ok":
            raise HealthKitResponseError(
                f"Unexpected status from {tool_name}: {parsed.get('status')!r}"
            )

        return parsed.get("result")


# ------------------------------------------------------------------
# Exceptions
# ------------------------------------------------------------------

class HealthKitClientError(Exception):
    """Base exception for HealthKitBridgeClient errors."""


class HealthKitConnectionError(HealthKitClientError):
    """Could not reach the HealthKit bridge."""


class HealthKitResponseError(HealthKitClientError):
    """Response from the HealthKit bridge was unexpected."""


class HealthKitBridgeError(HealthKitClientError):
    """The HealthKit bridge returned an error status."""


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _range(start_date: datetime, end_date: datetime) -> dict[str, str]:
    return {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}


def _serialize(value: Any) -> Any:
    """Make a store payload JSON-safe (datetimes become ISO 8601)."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


def _extract_payload(result: Any) -> Any | None:
    """Extract a usable payload from a fastmcp tool result.

    Accepts a ``CallToolResult`` (``.data`` / ``.structured_content`` /
    ``.content``), a list of content blocks, a single block, a raw string or
    an already-parsed dict.
    """
    if isinstance(result, dict):
        return result
    if isinstance(result, str):
        return result

    if isinstance(result, list):
        for block in result:
            payload = _payload_from_block(block, prefer_json=True)
            if payload is not None:
                return payload
        for block in result:
            payload = _payload_from_block(block, prefer_json=False)
            if payload is not None:
                return payload
        return None

    structured = getattr(result, "structured_content", None)
    if isinstance(structured, dict) and "status" in structured:
        return structured
    content = getattr(result, "content", None)
    if isinstance(content, list):
        return _extract_payload(content)

    payload = _payload_from_block(result, prefer_json=True)
    if payload is not None:
        return payload
    return _payload_from_block(result, prefer_json=False)


def _payload_from_block(block: Any, *, prefer_json: bool) -> Any | None:
    """Extract payload from a single content block."""
    if isinstance(block, dict):
        if prefer_json:
            for key in ("data", "json"):
                if key in block:
                    return block[key]
        return block.get("text")

    if prefer_json:
        for attr in ("data", "json"):
            if hasattr(block, attr):
                return getattr(block, attr)

    if hasattr(block, "text"):
        return block.text

    if isinstance(block, str):
        return block

    return None


def _format_error(error: Any) -> str:
    """Format a bridge error payload into a human-readable string."""
    if error is None:
        return "Unknown error"
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        msg = error.get("message") or error.get("code")
        return msg if isinstance(msg, str) and msg else str(error)
    return str(error)
