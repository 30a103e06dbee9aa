"""
Tests for client configuration
"""

import os
import sys
import pytest
from unittest.mock import patch

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from historian.client.errors import ConfigurationError
from historian.config import config as historian_config
from historian.config.config import (
    DEFAULT_API_URL,
    Config,
    DevelopmentConfig,
    EnterpriseConfig,
    get_config,
    is_valid_url,
    _env_number,
    _optional_float,
    _split_paths,
)


class TestHelpers:
    """Tests for config parsing helpers"""

    def test_optional_float(self):
        """Test optional float"""
        assert _optional_float("30") == 30.0
        assert _optional_float("none") is None
        assert _optional_float("") is None
        assert _optional_float(None) is None

    def test_split_paths(self):
        """Test split paths"""
        assert _split_paths("node_modules, dist,,build ") == ["node_modules", "dist", "build"]
        assert _split_paths("") is None

    @pytest.mark.parametrize("url,valid", [
        ("http://localhost:3000/api", True),
        ("https://historian.example.com/api", True),
        ("localhost:3000", False),
        ("ftp://historian.example.com", False),
        ("", False),
        (None, False),
    ])
    def test_is_valid_url(self, url, valid):
        """Test is valid url"""
        assert is_valid_url(url) is valid


class TestConfigSelection:
    """Tests for get_config"""

    def test_named(self):
        """Test config selection by name"""
        assert get_config("enterprise") is EnterpriseConfig
        assert get_config("testing") is historian_config.TestConfig

    def test_unknown_falls_back(self):
        """Test unknown falls back"""
        assert get_config("staging") is DevelopmentConfig

    @patch.dict(os.environ, {"HISTORIAN_ENV": "enterprise"})
    def test_from_environment(self):
        """Test config selection from HISTORIAN_ENV"""
        assert get_config() is EnterpriseConfig

    def test_default_url_is_local(self):
        """Test default url is local"""
        assert DEFAULT_API_URL == "http://localhost:3000/api"


class TestValidation:
    """Tests for Config.validate and friends"""

    def test_test_config_valid(self):
        """Test the test configuration validates"""
        historian_config.TestConfig.validate()

    @patch.object(historian_config.TestConfig, "API_URL", "not-a-url")
    def test_invalid_url(self):
        """Test invalid url"""
        with pytest.raises(ConfigurationError):
            historian_config.TestConfig.validate()

    @patch.object(historian_config.TestConfig, "EVENTS_PATH", "/analysis/events")
    def test_events_path_needs_session_id(self):
        """Test events path needs session id"""
        with pytest.raises(ConfigurationError):
            historian_config.TestConfig.validate()

    @patch.object(EnterpriseConfig, "API_KEY", "  ")
    @patch.object(EnterpriseConfig, "API_URL", "https://historian.example.com/api")
    def test_enterprise_requires_key(self):
        """Test enterprise requires key"""
        with pytest.raises(ConfigurationError):
            EnterpriseConfig.validate()

    @patch.object(EnterpriseConfig, "API_KEY", "secret")
    @patch.object(EnterpriseConfig, "API_URL", "https://historian.example.com/api")
    def test_enterprise_with_key(self):
        """Test enterprise with key"""
        EnterpriseConfig.validate()
        assert EnterpriseConfig.credential() == "secret"

    @patch.object(Config, "API_KEY", "  secret  ")
    def test_credential_stripped(self):
        """Test credential stripped"""
        assert Config.credential() == "secret"

    @patch.object(Config, "API_KEY", "secret")
    def test_describe_hides_key(self):
        """Test describe hides key"""
        summary = Config.describe()
        assert summary["authenticated"] is True
        assert "secret" not in str(summary)

    @patch.object(historian_config.TestConfig, "INVALID_SETTINGS", ("HISTORIAN_MAX_RECONNECTS='three'",))
    def test_unparsable_environment_rejected(self):
        """Test validate reports environment values that did not parse"""
        with pytest.raises(ConfigurationError, match="HISTORIAN_MAX_RECONNECTS"):
            historian_config.TestConfig.validate()

    @patch.object(historian_config.TestConfig, "INVALID_SETTINGS", ("HISTORIAN_REQUEST_TIMEOUT='soon'",))
    def test_cli_exits_with_config_error(self):
        """Test the CLI returns 2 when the environment did not parse"""
        from historian.client.launcher import main

        assert main(["--env", "testing"]) == 2


class TestEnvNumber:
    """Tests for numeric environment parsing"""

    @patch.dict(os.environ, {"HISTORIAN_MAX_RECONNECTS": "3"})
    def test_parsed(self):
        """Test a valid value is converted"""
        assert _env_number("HISTORIAN_MAX_RECONNECTS", 0, int) == 3

    @patch.dict(os.environ, {"HISTORIAN_MAX_RECONNECTS": ""})
    def test_blank_uses_default(self):
        """Test a blank value keeps the default"""
        assert _env_number("HISTORIAN_MAX_RECONNECTS", 0, int) == 0

    @patch.dict(os.environ, {"HISTORIAN_MAX_RECONNECTS": "three"})
    def test_bad_value_recorded(self):
        """Test a bad value keeps the default and is recorded instead of raising"""
        invalid = []
        with patch.object(historian_config, "_invalid_settings", invalid):
            assert _env_number("HISTORIAN_MAX_RECONNECTS", 0, int) == 0
        assert invalid == ["HISTORIAN_MAX_RECONNECTS='three'"]

    @patch.dict(os.environ, {"HISTORIAN_REQUEST_TIMEOUT": "none"})
    def test_timeout_disabled(self):
        """Test 'none' disables the request timeout"""
        assert _env_number("HISTORIAN_REQUEST_TIMEOUT", 30.0, _optional_float) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
