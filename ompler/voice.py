"""
Voice - one playable pitch derived from a recording by playback-rate scaling.

STATE MACHINE:
    idle (initial) -> sounding: noteOn/aftertouch with level > 0
    sounding -> idle:           noteOff, or noteOn/aftertouch with level <= 0
    sounding -> sounding:       aftertouch / repeated noteOn with level > 0
                                updates gain in place (no restart)
    idle -> idle:               noteOff / zero level (idempotent stop)

A voice reacts only to messages whose pitch equals its own
(base_pitch + offset). Anything else is logged at debug and ignored.

PITCH SHIFT:
    speed = 2 ** (offset / 12)   equal-tempered semitone ratio
"""

from typing import Optional

from ompler.asset import DecodedSample
from ompler.log import get_logger
from ompler.messages import AFTERTOUCH, NOTE_OFF, NOTE_ON, PerformanceMessage
from ompler.sink import AudioSink

logger = get_logger("voice")

SEMITONES_PER_OCTAVE = 12


def speed_from_offset(offset: int) -> float:
    """Playback-rate multiplier that shifts a recording by `offset` semitones.

    Examples:
        >>> speed_from_offset(0)
        1.0
        >>> speed_from_offset(12)
        2.0
        >>> round(speed_from_offset(6), 6)
        1.414214
    """
    return 2.0 ** (offset / SEMITONES_PER_OCTAVE)


class Voice:
    """One pitch of a family, bound to a shared buffer and a fixed speed.

    Attributes:
        base_pitch (int): Native pitch of the recording
        offset (int): Semitone distance from base_pitch
        speed (float): Playback-rate multiplier
        buffer (DecodedSample): Shared, read-only decoded recording
        sink (AudioSink): Process-wide audio output
        retrigger (bool): Restart instead of updating gain on repeated noteOn
        state (str): STATE_IDLE or STATE_SOUNDING
        gain (float): Current gain in [0, 1]
        starts (int): Number of times output was started
    """

    STATE_IDLE = "idle"
    STATE_SOUNDING = "sounding"

    def __init__(self, base_pitch: int, offset: int, speed: float, buffer: DecodedSample,
                 sink: AudioSink, retrigger: bool = False):
        if buffer is None:
            raise ValueError("Voice requires a decoded buffer")
        if speed <= 0:
            raise ValueError(f"speed must be positive, got {speed}")

        self.base_pitch = base_pitch
        self.offset = offset
        self.speed = speed
        self.buffer = buffer
        self.sink = sink
        self.retrigger = retrigger

        self.state = self.STATE_IDLE
        self.gain = 0.0
        self.starts = 0
        self._handle = None

    @property
    def pitch(self) -> int:
        """Target pitch: base_pitch + offset."""
        return self.base_pitch + self.offset

    @property
    def is_sounding(self) -> bool:
        return self.state == self.STATE_SOUNDING

    def handle(self, message: PerformanceMessage) -> None:
        """Apply one performance message to this voice's state machine."""
        if message.pitch != self.pitch:
            logger.debug(f"Ignoring message for pitch {message.pitch}, this voice plays {self.pitch}")
            return

        if message.kind not in (NOTE_ON, NOTE_OFF, AFTERTOUCH):
            logger.debug(f"Ignoring unknown message kind {message.kind!r} for pitch {self.pitch}")
            return

        level = message.level

        if message.kind == NOTE_OFF or level <= 0:
            self.stop()
            return

        if not self.is_sounding:
            self.start(level)
        elif message.kind == NOTE_ON and self.retrigger:
            self.stop()
            self.start(level)
        else:
            # Pressure modulates an already-sounding note, never retriggers
            self.set_gain(level)

    def start(self, gain: float) -> None:
        """Begin output at this voice's speed and enter the sounding state."""
        if self.is_sounding:
            self.stop()

        self.gain = gain
        self._handle = self.sink.start(self.buffer, self.speed, gain)
        self.state = self.STATE_SOUNDING
        self.starts += 1
        logger.debug(f"Pitch {self.pitch} on: gain {gain:.3f}, speed {self.speed:.4f}")

    def set_gain(self, gain: float) -> None:
        """Change loudness of the sounding output without restarting it."""
        self.gain = gain
        if self._handle is not None:
            self.sink.set_gain(self._handle, gain)

    def stop(self) -> None:
        """Stop output and return to idle. No-op when already idle."""
        if not self.is_sounding:
            return

        handle: Optional[object] = self._handle
        self._handle = None
        self.state = self.STATE_IDLE
        if handle is not None:
            self.sink.stop(handle)
        logger.debug(f"Pitch {self.pitch} off")

    def __repr__(self):
        return (f"Voice(pitch={self.pitch}, base_pitch={self.base_pitch}, offset={self.offset:+d}, "
                f"speed={self.speed:.4f}, state={self.state})")
