"""
Tests for performance messages

Validates velocity normalisation, wire-format validation and MIDI conversion.
"""

from types import SimpleNamespace

import pytest

from ompler.messages import (
    AFTERTOUCH,
    MAX_VELOCITY,
    NOTE_OFF,
    NOTE_ON,
    PerformanceMessage,
    from_mido,
    parse_message,
    velocity_to_gain,
)


class TestVelocityToGain:
    """Test the legacy 0-128 velocity scale."""

    def test_exact_values(self):
        assert velocity_to_gain(0) == 0.0
        assert velocity_to_gain(64) == 0.5
        assert velocity_to_gain(32) == 32 / 128
        assert velocity_to_gain(MAX_VELOCITY) == 1.0

    def test_monotone(self):
        gains = [velocity_to_gain(v) for v in range(0, 129)]
        assert all(a <= b for a, b in zip(gains, gains[1:]))

    def test_loudest_midi_value_below_one(self):
        assert velocity_to_gain(127) < 1.0


class TestPerformanceMessage:
    """Test message constructors and the level accessor."""

    def test_note_on_normalises_velocity(self):
        msg = PerformanceMessage.note_on(60, 64)
        assert msg.kind == NOTE_ON
        assert msg.pitch == 60
        assert msg.velocity == 0.5
        assert msg.level == 0.5

    def test_aftertouch_level_is_pressure(self):
        msg = PerformanceMessage.aftertouch(60, 32)
        assert msg.kind == AFTERTOUCH
        assert msg.pressure == 0.25
        assert msg.velocity == 0.0
        assert msg.level == 0.25

    def test_note_off_default_velocity(self):
        msg = PerformanceMessage.note_off(60)
        assert msg.kind == NOTE_OFF
        assert msg.level == 0.0

    def test_immutable(self):
        msg = PerformanceMessage.note_on(60, 64)
        with pytest.raises(AttributeError):
            msg.pitch = 61


class TestParseMessage:
    """Test wire-format validation."""

    def test_valid_note_on(self):
        is_valid, msg, error = parse_message({"kind": "noteOn", "pitch": 60, "velocity": 64})
        assert is_valid
        assert error is None
        assert msg == PerformanceMessage(NOTE_ON, 60, velocity=0.5)

    def test_valid_aftertouch(self):
        is_valid, msg, _ = parse_message({"kind": "aftertouch", "pitch": 0, "pressure": 127})
        assert is_valid
        assert msg.pressure == 127 / 128

    def test_missing_level_defaults_to_zero(self):
        is_valid, msg, _ = parse_message({"kind": "noteOff", "pitch": 127})
        assert is_valid
        assert msg.velocity == 0.0

    def test_unknown_kind(self):
        is_valid, msg, error = parse_message({"kind": "pitchBend", "pitch": 60})
        assert not is_valid
        assert msg is None
        assert "Unknown message kind" in error

    def test_not_a_mapping(self):
        is_valid, _, error = parse_message(["noteOn", 60])
        assert not is_valid
        assert "mapping" in error

    @pytest.mark.parametrize("pitch", [-1, 128, 60.0, "60", None, True])
    def test_invalid_pitch(self, pitch):
        is_valid, msg, error = parse_message({"kind": "noteOn", "pitch": pitch, "velocity": 10})
        assert not is_valid
        assert msg is None
        assert "pitch" in error

    @pytest.mark.parametrize("velocity", [-1, 128, "loud", False])
    def test_invalid_velocity(self, velocity):
        is_valid, _, error = parse_message({"kind": "noteOn", "pitch": 60, "velocity": velocity})
        assert not is_valid
        assert "velocity" in error

    def test_invalid_pressure(self):
        is_valid, _, error = parse_message({"kind": "aftertouch", "pitch": 60, "pressure": 200})
        assert not is_valid
        assert "pressure" in error


class TestFromMido:
    """Test MIDI message conversion (mido.Message duck-typed)."""

    def test_note_on(self):
        msg = from_mido(SimpleNamespace(type="note_on", note=60, velocity=64, channel=3))
        assert msg == PerformanceMessage(NOTE_ON, 60, velocity=0.5)

    def test_note_off(self):
        msg = from_mido(SimpleNamespace(type="note_off", note=61, velocity=0))
        assert msg.kind == NOTE_OFF
        assert msg.pitch == 61

    def test_polytouch_is_aftertouch(self):
        msg = from_mido(SimpleNamespace(type="polytouch", note=62, value=32))
        assert msg == PerformanceMessage(AFTERTOUCH, 62, pressure=0.25)

    @pytest.mark.parametrize("kind", ["aftertouch", "pitchwheel", "control_change", "clock"])
    def test_unroutable_types(self, kind):
        assert from_mido(SimpleNamespace(type=kind)) is None
