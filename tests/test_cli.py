"""
Tests for the OSC send tool
"""

from unittest.mock import patch

import pytest

from ompler.cli import build_osc_message, main, parse_argument


class TestParseArgument:
    """Test argument type coercion."""

    def test_types(self):
        assert parse_argument("60") == 60
        assert parse_argument("0.5") == 0.5
        assert parse_argument("loud") == "loud"


class TestBuildOscMessage:
    """Test message validation before sending."""

    def test_note_on(self):
        assert build_osc_message("noteOn", 60, 100) == ("/note/on", [60, 100])

    def test_note_off_drops_level(self):
        assert build_osc_message("noteOff", 60, 20) == ("/note/off", [60])

    def test_aftertouch(self):
        assert build_osc_message("aftertouch", 60, 30) == ("/aftertouch", [60, 30])

    def test_missing_level_defaults_to_zero(self):
        assert build_osc_message("noteOn", 60) == ("/note/on", [60, 0])

    def test_invalid_pitch(self):
        with pytest.raises(ValueError, match="pitch"):
            build_osc_message("noteOn", 130, 100)


class TestMain:
    """Test the entry point with the UDP client patched."""

    def test_sends_message(self, capsys):
        with patch("ompler.cli.SimpleUDPClient") as client_cls:
            main(["noteOn", "60", "100", "--port", "9010"])

        client_cls.assert_called_once_with("127.0.0.1", 9010)
        client_cls.return_value.send_message.assert_called_once_with("/note/on", [60, 100])
        assert "/note/on" in capsys.readouterr().out

    def test_invalid_velocity_exits(self, capsys):
        with patch("ompler.cli.SimpleUDPClient") as client_cls:
            with pytest.raises(SystemExit) as exc_info:
                main(["noteOn", "60", "300"])

        assert exc_info.value.code == 1
        client_cls.assert_not_called()
        assert "velocity" in capsys.readouterr().err

    def test_invalid_port_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["noteOff", "60", "--port", "0"])
        assert exc_info.value.code == 1
