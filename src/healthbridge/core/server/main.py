"""healthbridge server entry point: ``python -m healthbridge.core.server.main``."""

from __future__ import annotations

import logging

from healthbridge.core.config.settings import get_settings
from healthbridge.core.server.app import create_app

logger = logging.getLogger(__name__)


def run() -> None:
    """Serve the health data tools over Streamable HTTP on the configured host."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    settings.ensure_safe_bind()

    store = settings.healthkit_bridge_url or "in-memory store"
    logger.info(
        "healthbridge listening on %s:%d (native store: %s)",
        settings.healthbridge_host,
        settings.healthbridge_port,
        store,
    )
    create_app().run(
        transport="streamable-http",
        host=settings.healthbridge_host,
        port=settings.healthbridge_port,
    )


if __name__ == "__main__":
    run()
