"""Tests for settings and logging setup."""

import logging
from pathlib import Path

from tagged_tables.config import Settings
from tagged_tables.logging import configure_logging, get_logger


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Test defaults when the environment is empty."""
        settings = Settings.from_env({})
        assert settings.data_dir == Path("./databases")
        assert settings.backup_dir == Path("./backup")
        assert settings.log_level == "INFO"

    def test_from_env(self):
        """Test environment variables override defaults."""
        settings = Settings.from_env(
            {
                "TAGGED_TABLES_DATA_DIR": "/srv/data",
                "TAGGED_TABLES_BACKUP_DIR": "/srv/backup",
                "TAGGED_TABLES_LOG_LEVEL": "debug",
            }
        )
        assert settings.data_dir == Path("/srv/data")
        assert settings.backup_dir == Path("/srv/backup")
        assert settings.log_level == "DEBUG"

    def test_override(self):
        """Test explicit values win and None keeps the current value."""
        base = Settings.from_env({"TAGGED_TABLES_DATA_DIR": "/srv/data"})
        settings = base.override(backup_dir="/tmp/bk", log_level="warning")
        assert settings.data_dir == Path("/srv/data")
        assert settings.backup_dir == Path("/tmp/bk")
        assert settings.log_level == "WARNING"


class TestLogging:
    """Tests for logging setup."""

    def test_configure_level(self):
        """Test the package logger takes the configured level."""
        configure_logging("WARNING")
        assert logging.getLogger("tagged_tables").level == logging.WARNING
        configure_logging(logging.DEBUG)
        assert logging.getLogger("tagged_tables").level == logging.DEBUG

    def test_module_loggers_are_children(self):
        """Test module loggers propagate to the package logger."""
        package = logging.getLogger("tagged_tables")
        assert get_logger("tagged_tables.schema").parent is package
