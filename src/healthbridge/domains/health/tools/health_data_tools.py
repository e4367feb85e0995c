"""MCP tools for querying, aggregating, storing and deleting health data.

Every tool returns a JSON string. Domain failures (unknown types, read-only
types, bad ranges or buckets, malformed store values) come back as ``{"status": "error", ...}``;
failures at the native store boundary propagate to the MCP layer.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from healthbridge.domains.health.domain_logic.errors import HealthBridgeError
from healthbridge.domains.health.domain_logic.health_models import (
    QueryOptions,
    StoreRecord,
)

if TYPE_CHECKING:
    from healthbridge.domains.health.domain_logic.health_bridge import HealthBridge

logger = logging.getLogger(__name__)


def _error(exc: Exception) -> str:
    return json.dumps({
        "status": "error",
        "error_type": type(exc).__name__,
        "message": str(exc),
    })


def register_health_data_tools(
    mcp: FastMCP,
    bridge: HealthBridge,
) -> None:
    """Register health data tools on the MCP server."""

    @mcp.tool
    async def is_health_available(ctx: Context) -> str:
        """Check whether a native health store is available on this device."""
        available = await bridge.is_available()
        return json.dumps({"status": "ok", "available": available})

    @mcp.tool
    async def list_health_data_types(ctx: Context) -> str:
        """List every supported data type with its native identifier and unit."""
        data_types = bridge.get_available_data_types()
        return json.dumps({"status": "ok", "count": len(data_types), "data_types": data_types})

    @mcp.tool
    async def request_health_authorization(
        ctx: Context,
        read: list[str] | None = None,
        write: list[str] | None = None,
    ) -> str:
        """Ask the user for read and write access to health data types.

        Args:
            read: Data types to read (e.g., ['steps', 'heart_rate']).
            write: Data types to write. Write access implies read access.
        """
        request = [{"read": read or [], "write": write or []}]
        try:
            await bridge.request_authorization(request)
        except HealthBridgeError as exc:
            return _error(exc)
        return json.dumps({"status": "ok", "requested": {"read": read or [], "write": write or []}})

    @mcp.tool
    async def is_health_authorized(
        ctx: Context,
        read: list[str] | None = None,
        write: list[str] | None = None,
    ) -> str:
        """Check whether access has been granted for every listed data type.

        Args:
            read: Data types that must be readable.
            write: Data types that must be writable.
        """
        request = [{"read": read or [], "write": write or []}]
        try:
            authorized = await bridge.is_authorized(request)
        except HealthBridgeError as exc:
            return _error(exc)
        return json.dumps({"status": "ok", "authorized": authorized})

    @mcp.tool
    async def query_health_data(
        ctx: Context,
        data_type: str,
        start_date: str,
        end_date: str,
        unit: str = "",
    ) -> str:
        """Return the raw samples of one data type within a date range.

        Args:
            data_type: Generic data type (e.g., 'steps', 'sleep', 'blood_pressure').
            start_date: Range start (ISO 8601).
            end_date: Range end (ISO 8601), inclusive.
            unit: Optional unit override (e.g., 'km' for distance).
        """
        try:
            options = QueryOptions.from_dict({
                "data_type": data_type,
                "start_date": start_date,
                "end_date": end_date,
                "unit": unit,
            })
            samples = await bridge.query(options)
        except (HealthBridgeError, ValueError) as exc:
            return _error(exc)

        logger.info("query_health_data: %d %s samples", len(samples), data_type)
        return json.dumps({
            "status": "ok",
            "data_type": data_type,
            "count": len(samples),
            "samples": [s.as_dict() for s in samples],
        })

    @mcp.tool
    async def query_aggregated_health_data(
        ctx: Context,
        data_type: str,
        start_date: str,
        end_date: str,
        bucket: str = "",
        unit: str = "",
    ) -> str:
        """Return a summary of one data type, optionally split into time buckets.

        Args:
            data_type: Aggregatable data type (e.g., 'steps', 'activity', 'nutrition').
            start_date: Range start (ISO 8601).
            end_date: Range end (ISO 8601).
            bucket: One of 'hour', 'day', 'week', 'month', 'year'. Empty for one summary.
            unit: Optional unit override.
        """
        try:
            options = QueryOptions.from_dict({
                "data_type": data_type,
                "start_date": start_date,
                "end_date": end_date,
                "unit": unit,
                "bucket": bucket,
            })
            result = await bridge.query_aggregated(options)
        except (HealthBridgeError, ValueError) as exc:
            return _error(exc)

        payload: dict[str, Any] = {"status": "ok", "data_type": data_type}
        if isinstance(result, list):
            payload["bucket"] = bucket
            payload["buckets"] = [b.as_dict() for b in result]
        else:
            payload["summary"] = result.as_dict()
        return json.dumps(payload)

    @mcp.tool
    async def store_health_data(
        ctx: Context,
        data_type: str,
        start_date: str,
        end_date: str,
        value: Any = None,
        metadata: dict[str, Any] | None = None,
        cycling: bool = False,
        calories: float | None = None,
        distance: float | None = None,
    ) -> str:
        """Write one sample to the native health store.

        Args:
            data_type: Writable data type (e.g., 'weight', 'activity', 'nutrition').
            start_date: Sample start (ISO 8601).
            end_date: Sample end (ISO 8601).
            value: Sample value. A number for quantities, an activity name for
                'activity', or an object for blood_glucose, insulin,
                blood_pressure and nutrition.
            metadata: Optional metadata attached to the sample.
            cycling: For 'distance', store as cycling distance.
            calories: For 'activity', energy burned in kcal.
            distance: For 'activity', distance covered in meters.
        """
        try:
            record = StoreRecord.from_dict({
                "data_type": data_type,
                "start_date": start_date,
                "end_date": end_date,
                "value": value,
                "metadata": metadata,
                "cycling": cycling,
                "calories": calories,
                "distance": distance,
            })
            await bridge.store(record)
        except (HealthBridgeError, ValueError) as exc:
            return _error(exc)
        return json.dumps({"status": "saved", "data_type": data_type})

    @mcp.tool
    async def delete_health_data(
        ctx: Context,
        data_type: str,
        start_date: str,
        end_date: str,
        value: str = "",
        cycling: bool = False,
    ) -> str:
        """Delete samples of one data type within a date range.

        Args:
            data_type: Writable data type.
            start_date: Range start (ISO 8601).
            end_date: Range end (ISO 8601).
            value: For 'activity', a 'sleep*' value deletes sleep instead of workouts.
            cycling: For 'distance', delete cycling distance.
        """
        try:
            record = StoreRecord.from_dict({
                "data_type": data_type,
                "start_date": start_date,
                "end_date": end_date,
                "value": value or None,
                "cycling": cycling,
            })
            await bridge.delete(record)
        except (HealthBridgeError, ValueError) as exc:
            return _error(exc)
        return json.dumps({"status": "deleted", "data_type": data_type})
