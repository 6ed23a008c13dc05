"""
Configuration for the token market server.

Every setting is read from an environment variable, with a default
suitable for local development. ``get_settings()`` returns one cached,
validated instance per process.
"""

import os
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from ..core.order_types import FillPolicy, MatchPolicy


def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw}")


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name, default)
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} must be a number, got: {raw}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings:
    """
    Server, matching and logging settings.

    Attributes mirror the environment variables in lower case, e.g.
    ``MATCH_POLICY`` is ``settings.match_policy``.
    """

    def __init__(self):
        # Servers
        self.rest_host = _env_str("REST_HOST", "0.0.0.0")
        self.rest_port = _env_int("REST_PORT", 5000)
        self.websocket_host = _env_str("WEBSOCKET_HOST", "localhost")
        self.websocket_port = _env_int("WEBSOCKET_PORT", 8765)
        self.websocket_ping_interval = _env_int("WEBSOCKET_PING_INTERVAL", 20)
        self.websocket_ping_timeout = _env_int("WEBSOCKET_PING_TIMEOUT", 10)

        # Logging
        self.log_level = _env_str("LOG_LEVEL", "INFO").upper()
        self.log_file = _env_str("LOG_FILE", "logs/token_market.log")
        self.audit_log_file = _env_str("AUDIT_LOG_FILE", "logs/audit.log")
        self.enable_performance_monitoring = _env_bool("ENABLE_PERFORMANCE_MONITORING", True)

        # Matching
        self.match_policy = _env_str("MATCH_POLICY", MatchPolicy.FIRST_MATCH.value).lower()
        self.fill_policy = _env_str("FILL_POLICY", FillPolicy.ALL_OR_NOTHING.value).lower()

        # Order limits
        self.price_decimals = _env_int("PRICE_DECIMALS", 2)
        self.max_quantity = _env_int("MAX_QUANTITY", 1000000)
        self.max_price = _env_decimal("MAX_PRICE", "10000000")

        # HTTP
        self.enable_cors = _env_bool("ENABLE_CORS", True)
        self.cors_origins = _env_list("CORS_ORIGINS", "*")
        self.debug = _env_bool("DEBUG", False)

    def to_dict(self) -> Dict[str, Any]:
        """Settings as JSON-friendly values (decimals become strings)."""
        return {
            name: str(value) if isinstance(value, Decimal) else value
            for name, value in vars(self).items()
        }

    def validate(self) -> None:
        """
        Check every setting and report all problems at once.

        Raises:
            ValueError: If any setting is out of range
        """
        errors = []

        for label, port in (("REST", self.rest_port), ("WebSocket", self.websocket_port)):
            if not (1 <= port <= 65535):
                errors.append(f"Invalid {label} port: {port}")

        if self.match_policy not in {p.value for p in MatchPolicy}:
            errors.append(f"Invalid match policy: {self.match_policy}")

        if self.fill_policy not in {p.value for p in FillPolicy}:
            errors.append(f"Invalid fill policy: {self.fill_policy}")

        if not (0 <= self.price_decimals <= 8):
            errors.append(f"Price decimals must be between 0 and 8: {self.price_decimals}")

        if self.max_quantity <= 0:
            errors.append(f"Max quantity must be positive: {self.max_quantity}")

        if not self.max_price.is_finite() or self.max_price <= 0:
            errors.append(f"Max price must be positive: {self.max_price}")

        if self.websocket_ping_interval <= 0 or self.websocket_ping_timeout <= 0:
            errors.append("WebSocket ping interval and timeout must be positive")

        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"Invalid log level: {self.log_level}")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading and validating them on first use."""
    global _settings
    if _settings is None:
        _settings = reload_settings()
    return _settings


def reload_settings() -> Settings:
    """Re-read the environment and replace the process-wide settings."""
    global _settings
    settings = Settings()
    settings.validate()
    _settings = settings
    return settings
