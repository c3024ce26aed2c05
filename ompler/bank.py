"""Voice bank - one Voice per semitone offset around a family's base pitch."""

from typing import Iterator, List, Optional

from ompler.asset import DecodedSample
from ompler.sink import AudioSink
from ompler.voice import Voice, speed_from_offset


class VoiceBank:
    """Ordered collection of voices sharing one base pitch and one buffer.

    Pure construction: no dispatch logic lives here.

    Attributes:
        base_pitch (int): Native pitch of the shared recording
        min_offset (int): Lowest offset (inclusive)
        max_offset (int): Highest offset (inclusive)
        voices (List[Voice]): One voice per offset, ascending
    """

    def __init__(self, base_pitch: int, min_offset: int, max_offset: int, voices: List[Voice]):
        self.base_pitch = base_pitch
        self.min_offset = min_offset
        self.max_offset = max_offset
        self.voices = voices

    @classmethod
    def build(cls, buffer: DecodedSample, base_pitch: int, min_offset: int, max_offset: int,
              sink: AudioSink, retrigger: bool = False) -> "VoiceBank":
        """Construct one voice per offset in the closed range [min_offset, max_offset].

        Args:
            buffer: Decoded recording, must already be loaded
            base_pitch: Native pitch of the recording
            min_offset: Lowest semitone offset (may be negative)
            max_offset: Highest semitone offset
            sink: Audio output shared by every voice
            retrigger: Passed to each voice

        Returns:
            VoiceBank with max_offset - min_offset + 1 voices

        Raises:
            ValueError: If buffer is missing or the range is empty
        """
        if buffer is None:
            raise ValueError("Cannot build voices before the sample buffer is ready")
        if min_offset > max_offset:
            raise ValueError(f"Empty offset range: min_offset {min_offset} > max_offset {max_offset}")

        voices = [
            Voice(base_pitch, offset, speed_from_offset(offset), buffer, sink, retrigger=retrigger)
            for offset in range(min_offset, max_offset + 1)
        ]
        return cls(base_pitch, min_offset, max_offset, voices)

    @property
    def pitches(self) -> range:
        """Pitches covered by this bank, ascending."""
        return range(self.base_pitch + self.min_offset, self.base_pitch + self.max_offset + 1)

    def voice_for_offset(self, offset: int) -> Optional[Voice]:
        if not self.min_offset <= offset <= self.max_offset:
            return None
        return self.voices[offset - self.min_offset]

    def __iter__(self) -> Iterator[Voice]:
        return iter(self.voices)

    def __len__(self) -> int:
        return len(self.voices)
