"""
Tests for logging utilities
"""

import logging

from ompler.log import OmplerFormatter, get_logger, set_level


class TestOmplerFormatter:
    """Test the compact log line format."""

    def test_format(self):
        record = logging.LogRecord("ompler.family", logging.WARNING, __file__, 1,
                                   "Voices ready", None, None)
        line = OmplerFormatter().format(record)

        assert line.startswith("[W ")
        assert line.endswith("family   ] Voices ready")

    def test_milliseconds_never_reach_four_digits(self):
        """Fractional milliseconds just under a second truncate instead of rounding up."""
        record = logging.LogRecord("ompler.loom", logging.INFO, __file__, 1, "ok", None, None)
        record.msecs = 999.7
        line = OmplerFormatter().format(record)

        assert ".999 " in line
        assert ".1000" not in line

    def test_long_module_name_truncated(self):
        record = logging.LogRecord("ompler.instrument", logging.INFO, __file__, 1, "ok", None, None)
        assert "instrumen] ok" in OmplerFormatter().format(record)


class TestGetLogger:
    """Test logger naming, levels and handler installation."""

    def test_namespaced(self):
        assert get_logger("loom").name == "ompler.loom"
        assert get_logger("ompler.loom").name == "ompler.loom"

    def test_single_handler(self):
        logger = get_logger("test_single_handler")
        get_logger("test_single_handler")
        assert len(logger.handlers) == 1

    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("OMPLER_LOG_LEVEL", "DEBUG")
        assert get_logger("test_env_level").level == logging.DEBUG

    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setenv("OMPLER_LOG_LEVEL", "DEBUG")
        assert get_logger("test_explicit_level", "ERROR").level == logging.ERROR

    def test_set_level(self):
        logger = get_logger("test_set_level")
        set_level("WARNING")
        try:
            assert logger.level == logging.WARNING
        finally:
            set_level("INFO")
