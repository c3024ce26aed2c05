"""
Performance messages - the note-on / note-off / aftertouch values routed to voices.

WIRE FORMAT:
    {"kind": "noteOn" | "noteOff" | "aftertouch",
     "pitch": 0..127,
     "velocity": 0..127,   # noteOn / noteOff
     "pressure": 0..127}   # aftertouch

Velocity and pressure are normalised to [0, 1] by dividing by MAX_VELOCITY
(128, the legacy ceiling), so the loudest MIDI value 127 maps to ~0.99.

Messages are transient: produced by a transport (MIDI, OSC), consumed
synchronously by the loom, never stored.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

# Protocol constants
MAX_VELOCITY = 128
PITCH_MIN = 0
PITCH_MAX = 127
PITCH_COUNT = PITCH_MAX + 1

# Message kinds (wire names)
NOTE_ON = "noteOn"
NOTE_OFF = "noteOff"
AFTERTOUCH = "aftertouch"
MESSAGE_KINDS = (NOTE_ON, NOTE_OFF, AFTERTOUCH)


def velocity_to_gain(velocity: float) -> float:
    """Convert a raw 0-128 velocity or pressure value to a gain in [0, 1].

    Examples:
        >>> velocity_to_gain(64)
        0.5
        >>> velocity_to_gain(0)
        0.0
    """
    return velocity / MAX_VELOCITY


@dataclass(frozen=True)
class PerformanceMessage:
    """One performance event addressed to a single pitch.

    Attributes:
        kind (str): NOTE_ON, NOTE_OFF or AFTERTOUCH
        pitch (int): Note number 0-127
        velocity (float): Normalised velocity in [0, 1] (note messages)
        pressure (float): Normalised pressure in [0, 1] (aftertouch)
    """
    kind: str
    pitch: int
    velocity: float = 0.0
    pressure: float = 0.0

    @property
    def level(self) -> float:
        """Velocity for note messages, pressure for aftertouch."""
        if self.kind == AFTERTOUCH:
            return self.pressure
        return self.velocity

    @classmethod
    def note_on(cls, pitch: int, velocity: int) -> "PerformanceMessage":
        return cls(NOTE_ON, pitch, velocity=velocity_to_gain(velocity))

    @classmethod
    def note_off(cls, pitch: int, velocity: int = 0) -> "PerformanceMessage":
        return cls(NOTE_OFF, pitch, velocity=velocity_to_gain(velocity))

    @classmethod
    def aftertouch(cls, pitch: int, pressure: int) -> "PerformanceMessage":
        return cls(AFTERTOUCH, pitch, pressure=velocity_to_gain(pressure))


def _validate_level(name: str, value) -> Tuple[Optional[float], Optional[str]]:
    """Validate a raw 0-127 velocity/pressure value.

    Returns:
        Tuple of (raw_value, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None, f"{name} must be a number, got {value!r}"
    if not 0 <= value <= PITCH_MAX:
        return None, f"{name} must be in range 0-{PITCH_MAX}, got {value}"
    return value, None


def parse_message(data: dict) -> Tuple[bool, Optional[PerformanceMessage], Optional[str]]:
    """Validate a wire-format message and build a PerformanceMessage.

    Validation steps:
        1. kind is one of noteOn / noteOff / aftertouch
        2. pitch is an integer in range 0-127
        3. velocity (note kinds) or pressure (aftertouch) is a number in 0-127;
           a missing value defaults to 0

    Args:
        data: Decoded wire message

    Returns:
        Tuple of (is_valid, message, error_message):
            - is_valid: True if message passes all validation
            - message: Normalised PerformanceMessage, None if invalid
            - error_message: Human-readable error if invalid, None if valid

    Examples:
        >>> parse_message({"kind": "noteOn", "pitch": 60, "velocity": 64})
        (True, PerformanceMessage(kind='noteOn', pitch=60, velocity=0.5, pressure=0.0), None)
        >>> parse_message({"kind": "pitchBend", "pitch": 60})[2]
        "Unknown message kind: 'pitchBend'"
    """
    if not isinstance(data, dict):
        return False, None, f"Message must be a mapping, got {type(data).__name__}"

    kind = data.get("kind")
    if kind not in MESSAGE_KINDS:
        return False, None, f"Unknown message kind: {kind!r}"

    pitch = data.get("pitch")
    if isinstance(pitch, bool) or not isinstance(pitch, int):
        return False, None, f"pitch must be an integer, got {pitch!r}"
    if not PITCH_MIN <= pitch <= PITCH_MAX:
        return False, None, f"pitch must be in range {PITCH_MIN}-{PITCH_MAX}, got {pitch}"

    field_name = "pressure" if kind == AFTERTOUCH else "velocity"
    raw, error = _validate_level(field_name, data.get(field_name, 0))
    if error:
        return False, None, error

    if kind == AFTERTOUCH:
        message = PerformanceMessage(kind, pitch, pressure=velocity_to_gain(raw))
    else:
        message = PerformanceMessage(kind, pitch, velocity=velocity_to_gain(raw))
    return True, message, None


def from_mido(msg) -> Optional[PerformanceMessage]:
    """Translate a mido message into a PerformanceMessage.

    note_on / note_off map directly; polytouch (polyphonic key pressure) maps
    to aftertouch. Channel aftertouch carries no note and, like pitch bend and
    control change, is not routable: those return None. The MIDI channel is
    ignored.

    Args:
        msg: mido.Message

    Returns:
        PerformanceMessage, or None if the message type is not routable
    """
    if msg.type == "note_on":
        return PerformanceMessage.note_on(msg.note, msg.velocity)
    if msg.type == "note_off":
        return PerformanceMessage.note_off(msg.note, msg.velocity)
    if msg.type == "polytouch":
        return PerformanceMessage.aftertouch(msg.note, msg.value)
    return None
