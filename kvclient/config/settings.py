"""
KV Cluster Client Configuration Settings

This module contains the configuration defaults for client handles.
Every value can be overridden through a KV_CLIENT_* environment variable
or by passing an explicit Settings instance to a client.
"""

import logging
import os
import sys
from dataclasses import dataclass


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() == "true"


@dataclass
class Settings:
    """Client configuration settings."""

    # Default node for standalone clients
    HOST: str = os.environ.get("KV_CLIENT_HOST", "localhost")
    PORT: int = int(os.environ.get("KV_CLIENT_PORT", "6379"))

    # Timeouts (seconds)
    CONNECT_TIMEOUT: float = float(os.environ.get("KV_CLIENT_CONNECT_TIMEOUT", "5.0"))
    REQUEST_TIMEOUT: float = float(os.environ.get("KV_CLIENT_REQUEST_TIMEOUT", "5.0"))

    # Connection establishment backoff: delay = FACTOR * BASE ** attempt
    CONNECT_RETRIES: int = int(os.environ.get("KV_CLIENT_CONNECT_RETRIES", "3"))
    BACKOFF_FACTOR: float = float(os.environ.get("KV_CLIENT_BACKOFF_FACTOR", "0.05"))
    BACKOFF_BASE: int = int(os.environ.get("KV_CLIENT_BACKOFF_BASE", "2"))

    # Reply handling
    DECODE_RESPONSES: bool = _env_bool("KV_CLIENT_DECODE_RESPONSES", "true")
    ERROR_POLICY: str = os.environ.get("KV_CLIENT_ERROR_POLICY", "value")

    # Logging settings
    DEBUG: bool = _env_bool("KV_CLIENT_DEBUG", "false")
    LOG_LEVEL: str = os.environ.get("KV_CLIENT_LOG_LEVEL", "INFO")

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait before connection attempt number ``attempt + 1``."""
        return self.BACKOFF_FACTOR * (self.BACKOFF_BASE ** attempt)


# Global settings instance
settings = Settings()


def setup_logging(debug: bool = None) -> None:
    """
    Configure logging for applications embedding the client.

    The library itself never configures logging; call this from an
    application entry point when a quick stdout setup is wanted.

    Args:
        debug: Force debug logging (default from settings.DEBUG)
    """
    debug = settings.DEBUG if debug is None else debug
    level = logging.DEBUG if debug else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )
