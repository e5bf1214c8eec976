"""
Unit tests for configuration loading and validation.

These tests ensure:
  1. Config loads from environment variables correctly
  2. Required fields are validated at startup
  3. Type conversions work (e.g., strings to ints and floats)
  4. The default distance band is checked for consistency
"""

import pytest
from unittest.mock import patch
from geomatch.config import Config, validate_config


class TestConfigLoading:
    """Test configuration loading from environment."""

    @patch.dict("os.environ", {"FIREBASE_PROJECT_ID": "test-project"})
    def test_required_config_loads(self):
        """Required config fields should load from environment."""
        config = Config(_env_file=None)
        assert config.FIREBASE_PROJECT_ID == "test-project"

    @patch.dict("os.environ", {
        "FIREBASE_PROJECT_ID": "test-project",
        "PORT": "9000",
        "MAX_CANDIDATES": "50",
    })
    def test_integer_config_conversion(self):
        """Integer environment variables should be converted to int."""
        config = Config(_env_file=None)
        assert config.PORT == 9000
        assert config.MAX_CANDIDATES == 50

    @patch.dict("os.environ", {
        "FIREBASE_PROJECT_ID": "test-project",
        "DEFAULT_MAX_RADIUS_KM": "250.5",
    })
    def test_float_config_conversion(self):
        """Radius bounds should be parsed as floats."""
        config = Config(_env_file=None)
        assert config.DEFAULT_MAX_RADIUS_KM == 250.5

    @patch.dict("os.environ", {"FIREBASE_PROJECT_ID": "test-project"})
    def test_optional_config_defaults(self):
        """Optional config should have sensible defaults."""
        config = Config(_env_file=None)
        assert config.PORT == 8000
        assert config.DEFAULT_MIN_RADIUS_KM == 0.0
        assert config.DEFAULT_MAX_RADIUS_KM == 1000.0
        assert isinstance(config.DEBUG, bool)


class TestConfigValidation:
    """Test configuration validation function."""

    @patch("geomatch.config.config")
    def test_validate_firebase_required(self, mock_config):
        """Firebase project ID must be set."""
        mock_config.FIREBASE_PROJECT_ID = ""
        mock_config.DEFAULT_MIN_RADIUS_KM = 0.0
        mock_config.DEFAULT_MAX_RADIUS_KM = 1000.0
        mock_config.MAX_CANDIDATES = 100

        with pytest.raises(ValueError, match="FIREBASE_PROJECT_ID"):
            validate_config()

    @patch("geomatch.config.config")
    def test_validate_inverted_radius_band(self, mock_config):
        """Default min radius above max radius is a configuration error."""
        mock_config.FIREBASE_PROJECT_ID = "test"
        mock_config.DEFAULT_MIN_RADIUS_KM = 500.0
        mock_config.DEFAULT_MAX_RADIUS_KM = 100.0
        mock_config.MAX_CANDIDATES = 100

        with pytest.raises(ValueError, match="DEFAULT_MIN_RADIUS_KM"):
            validate_config()

    @patch("geomatch.config.config")
    def test_validate_max_candidates_positive(self, mock_config):
        mock_config.FIREBASE_PROJECT_ID = "test"
        mock_config.DEFAULT_MIN_RADIUS_KM = 0.0
        mock_config.DEFAULT_MAX_RADIUS_KM = 1000.0
        mock_config.MAX_CANDIDATES = 0

        with pytest.raises(ValueError, match="MAX_CANDIDATES"):
            validate_config()

    @patch("geomatch.config.config")
    def test_validate_success_returns_status(self, mock_config):
        """Successful validation should return status dict."""
        mock_config.FIREBASE_PROJECT_ID = "test"
        mock_config.DEFAULT_MIN_RADIUS_KM = 0.0
        mock_config.DEFAULT_MAX_RADIUS_KM = 1000.0
        mock_config.MAX_CANDIDATES = 100
        mock_config.API_TOKEN = None

        result = validate_config()
        assert result["firebase"] == "✓ Configured"
        assert result["radius_band"] == "0.0-1000.0 km"
        assert result["auth"] == "✗ Open"
