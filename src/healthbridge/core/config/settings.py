"""Application settings loaded from environment variables."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from pydantic_settings import BaseSettings


def is_loopback_host(host: str) -> bool:
    """True for ``localhost`` and any loopback IPv4/IPv6 literal."""
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


class Settings(BaseSettings):
    """healthbridge server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default: the tools read and write personal health records.
    healthbridge_host: str = "127.0.0.1"
    healthbridge_port: int = 8003
    healthbridge_log_level: str = "info"
    # There is no auth layer; binding to a non-loopback host requires this flag.
    healthbridge_allow_insecure_bind: bool = False

    # Native store boundary. Empty means the in-process memory store.
    healthkit_bridge_url: str = ""

    @property
    def log_level(self) -> int:
        return getattr(logging, self.healthbridge_log_level.upper(), logging.INFO)

    def ensure_safe_bind(self) -> None:
        """Refuse a non-loopback host unless the insecure-bind flag is set.

        Raises:
            RuntimeError: ``healthbridge_host`` is not loopback and
                ``healthbridge_allow_insecure_bind`` is false.
        """
        if self.healthbridge_allow_insecure_bind or is_loopback_host(self.healthbridge_host):
            return
        raise RuntimeError(
            f"Refusing to bind healthbridge to {self.healthbridge_host!r} without an auth layer. "
            "Set HEALTHBRIDGE_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
