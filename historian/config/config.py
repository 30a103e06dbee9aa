"""
Configuration module for the Code Historian client
Environment-based configuration so the same client can target a local
backend or a self-hosted enterprise server
"""

import os
from typing import Callable, List, Optional
from urllib.parse import urlparse

from historian.client.errors import ConfigurationError

# Local-first: an unauthenticated backend on the loopback interface
DEFAULT_API_URL = "http://localhost:3000/api"
DEFAULT_EVENTS_PATH = "/analysis/{session_id}/events"

# Environment values that failed to parse; Config.validate() reports them
_invalid_settings: List[str] = []


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "" or value.strip().lower() == "none":
        return None
    return float(value)


def _split_paths(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [p.strip() for p in value.split(",") if p.strip()]


def _env_number(name: str, default, cast: Callable[[str], object]):
    """Parse a numeric env var, keeping the default and recording bad values"""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        _invalid_settings.append(f"{name}={raw!r}")
        return default


class Config:
    """Main configuration class with environment variable overrides"""

    # Backend
    API_URL = os.getenv('HISTORIAN_API_URL', DEFAULT_API_URL)
    API_KEY = os.getenv('HISTORIAN_API_KEY', '')
    REQUIRE_API_KEY = False

    # Transport
    REQUEST_TIMEOUT = _env_number('HISTORIAN_REQUEST_TIMEOUT', 30.0, _optional_float)
    TRANSPORT_WORKERS = _env_number('HISTORIAN_TRANSPORT_WORKERS', 4, int)
    LAUNCH_WORKERS = _env_number('HISTORIAN_LAUNCH_WORKERS', 2, int)

    # Live update channel
    EVENTS_PATH = os.getenv('HISTORIAN_EVENTS_PATH', DEFAULT_EVENTS_PATH)
    MAX_RECONNECTS = _env_number('HISTORIAN_MAX_RECONNECTS', 0, int)
    RECONNECT_BACKOFF = _env_number('HISTORIAN_RECONNECT_BACKOFF', 1.0, float)
    MAX_BACKOFF = _env_number('HISTORIAN_MAX_BACKOFF', 30.0, float)

    # Notifications
    NOTIFICATIONS_ENABLED = os.getenv('HISTORIAN_NOTIFICATIONS', 'true').lower() == 'true'
    SHOW_IN_STATUS_BAR = os.getenv('HISTORIAN_STATUS_BAR', 'true').lower() == 'true'

    # Analysis settings forwarded to the backend only when set
    MAX_DEPTH = _env_number('HISTORIAN_MAX_DEPTH', None, int)
    EXCLUDED_PATHS = _split_paths(os.getenv('HISTORIAN_EXCLUDED_PATHS'))

    INVALID_SETTINGS = tuple(_invalid_settings)

    @classmethod
    def validate(cls):
        """Check that the environment parsed and the backend URL is usable"""
        if cls.INVALID_SETTINGS:
            raise ConfigurationError(
                f"Invalid environment settings: {', '.join(cls.INVALID_SETTINGS)}"
            )
        if not is_valid_url(cls.API_URL):
            raise ConfigurationError(f"Invalid server URL: {cls.API_URL!r}")
        if "{session_id}" not in cls.EVENTS_PATH:
            raise ConfigurationError(
                f"Events path must contain '{{session_id}}': {cls.EVENTS_PATH!r}"
            )

    @classmethod
    def credential(cls) -> Optional[str]:
        """Configured API key, or None when running unauthenticated"""
        key = (cls.API_KEY or "").strip()
        return key or None

    @classmethod
    def describe(cls) -> dict:
        """Settings summary safe to log (the key itself is never included)"""
        return {
            "api_url": cls.API_URL,
            "authenticated": cls.credential() is not None,
            "request_timeout": cls.REQUEST_TIMEOUT,
            "events_path": cls.EVENTS_PATH,
            "max_reconnects": cls.MAX_RECONNECTS,
            "notifications": cls.NOTIFICATIONS_ENABLED,
        }


class DevelopmentConfig(Config):
    """Local single-user backend"""


class EnterpriseConfig(Config):
    """Self-hosted multi-user backend; requests must be authenticated"""
    REQUIRE_API_KEY = True

    @classmethod
    def validate(cls):
        super().validate()

        if cls.credential() is None:
            raise ConfigurationError("HISTORIAN_API_KEY must be set for enterprise deployments")


class TestConfig(Config):
    """Test-specific configuration"""
    API_URL = 'http://historian.test/api'
    API_KEY = ''
    REQUEST_TIMEOUT = 5.0
    MAX_RECONNECTS = 0
    RECONNECT_BACKOFF = 0.0
    MAX_BACKOFF = 0.0
    INVALID_SETTINGS = ()


# Configuration selection
config_map = {
    'development': DevelopmentConfig,
    'enterprise': EnterpriseConfig,
    'testing': TestConfig,
    'default': DevelopmentConfig
}


def get_config(config_name: Optional[str] = None) -> type:
    """Get configuration class based on environment"""
    if config_name is None:
        config_name = os.getenv('HISTORIAN_ENV', 'default')

    return config_map.get(config_name, DevelopmentConfig)


def is_valid_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host"""
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
