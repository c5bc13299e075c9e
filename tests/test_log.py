"""
Tests for social.graze.paymcp.common.log
"""

import json
import logging
from unittest.mock import patch

import pytest

from social.graze.paymcp.common.log import configure_logging


@pytest.fixture
def root_level():
    root = logging.getLogger()
    level = root.level
    yield root
    root.setLevel(level)


class TestConfigureLogging:
    """Test logging configuration."""

    def test_config_file(self, monkeypatch, tmp_path):
        """A LOGGING_CONFIG_FILE is applied with dictConfig."""
        config = {"version": 1, "disable_existing_loggers": False}
        path = tmp_path / "logging.json"
        path.write_text(json.dumps(config))
        monkeypatch.setenv("LOGGING_CONFIG_FILE", str(path))

        with patch("social.graze.paymcp.common.log.dictConfig") as dict_config:
            configure_logging()

        dict_config.assert_called_once_with(config)

    def test_default_debug(self, monkeypatch, root_level):
        """Without a config file everything is logged at DEBUG."""
        monkeypatch.delenv("LOGGING_CONFIG_FILE", raising=False)

        configure_logging()

        assert root_level.level == logging.DEBUG
