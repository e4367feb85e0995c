"""healthbridge MCP server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from healthbridge.core.config.settings import get_settings
from healthbridge.domains.health.connectors import NativeHealthStore
from healthbridge.domains.health.connectors.healthkit_bridge import HealthKitBridgeClient
from healthbridge.domains.health.connectors.memory_store import InMemoryHealthStore
from healthbridge.domains.health.domain_logic.health_bridge import HealthBridge
from healthbridge.domains.health.tools.health_data_tools import register_health_data_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "healthbridge"
SERVER_VERSION = "0.1.0"


def create_app(
    *,
    health_store_override: NativeHealthStore | None = None,
) -> FastMCP:
    """Create and configure the healthbridge MCP server.

    The native store is, in order of preference: the override, a
    HealthKit bridge client when ``HEALTHKIT_BRIDGE_URL`` is set, or an
    empty in-memory store.
    """
    settings = get_settings()

    server = FastMCP(
        "healthbridge",
        instructions=(
            "Platform-agnostic access to personal health data. Query samples, "
            "aggregate them into calendar buckets, and store or delete records "
            "using generic data type names such as 'steps' or 'blood_pressure'."
        ),
    )

    # --- Native store ---
    if health_store_override is not None:
        store: NativeHealthStore = health_store_override
        store_kind = "override"
    elif settings.healthkit_bridge_url:
        from fastmcp import Client as MCPClient

        store = HealthKitBridgeClient(MCPClient(settings.healthkit_bridge_url))
        store_kind = "healthkit_bridge"
        logger.info("HealthKit bridge configured for %s", settings.healthkit_bridge_url)
    else:
        store = InMemoryHealthStore()
        store_kind = "memory"
        logger.info("No HEALTHKIT_BRIDGE_URL configured; using in-memory health store")

    bridge = HealthBridge(store)

    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "store": store_kind,
            "healthkit_bridge_url": settings.healthkit_bridge_url,
            "data_types": len(bridge.registry),
        }

    register_health_data_tools(server, bridge)
    logger.info("Health data tools registered (%d data types)", len(bridge.registry))

    return server


# Module-level instance for FastMCP discovery ("...app.py:mcp").
# Lazy: only created when accessed (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
