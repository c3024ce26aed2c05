"""
Audio output sink - the one process-wide playback handle shared by every voice.

ARCHITECTURE:
- Voices never create audio primitives; they call start/set_gain/stop on the
  sink passed to them at construction
- SoundDeviceSink owns a single sounddevice.OutputStream whose callback sums
  all active playheads (mono) and writes the mix to every output channel
- Each playhead reads its buffer at a fractional step with linear
  interpolation: step = speed * buffer_rate / output_rate, so playback-rate
  scaling shifts pitch and recordings at a foreign sample rate stay in tune
- Gain is read per block, so aftertouch changes loudness of a sounding note
  without restarting it

THREADING:
    start/set_gain/stop run on the event loop thread, the stream callback on
    PortAudio's thread. The active-playhead set is guarded by a lock; the
    callback holds it only while mixing one block.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

import numpy as np

from ompler.asset import DecodedSample
from ompler.errors import UnsupportedEnvironment
from ompler.log import get_logger

logger = get_logger("sink")

DEFAULT_SAMPLE_RATE = 44100
DEFAULT_BLOCKSIZE = 512  # ~11.6ms at 44.1kHz, balances latency vs CPU


def find_audio_device(substring: str) -> Optional[int]:
    """Find the first output device whose name contains `substring`.

    Args:
        substring: Case-insensitive name fragment (e.g. 'pulse', 'USB')

    Returns:
        Device index of first match, or None if no match found

    Raises:
        UnsupportedEnvironment: If PortAudio is unavailable
    """
    sd = _import_sounddevice()
    devices = sd.query_devices()
    substring_lower = substring.lower()

    logger.info(f"Searching for device matching '{substring}'...")
    for i, device in enumerate(devices):
        if device.get('max_output_channels', 0) <= 0:
            continue
        if substring_lower in device['name'].lower():
            logger.info(f"Selected device {i}: {device['name']}")
            return i

    logger.warning(f"No device found matching '{substring}', using default device")
    return None


def _import_sounddevice():
    """Import sounddevice, converting a missing PortAudio into UnsupportedEnvironment."""
    try:
        import sounddevice as sd
    except (ImportError, OSError) as e:
        raise UnsupportedEnvironment(f"Audio playback unavailable: {e}") from e
    return sd


class Playhead:
    """Rate-scaled reader over one mono buffer.

    Attributes:
        data (np.ndarray): Source samples (shared, read-only)
        step (float): Source samples advanced per output frame
        gain (float): Linear gain applied per block
        position (float): Fractional read position in source samples
        finished (bool): True once the read position passes the end
    """

    def __init__(self, data: np.ndarray, step: float, gain: float):
        if step <= 0:
            raise ValueError(f"step must be positive, got {step}")
        self.data = data
        self.step = step
        self.gain = gain
        self.position = 0.0
        self.finished = len(data) < 2

    def render(self, frames: int) -> np.ndarray:
        """Produce the next `frames` output samples and advance.

        Returns:
            1D float32 array of length `frames`, zero-padded past the end
        """
        out = np.zeros(frames, dtype=np.float32)
        if self.finished:
            return out

        positions = self.position + self.step * np.arange(frames, dtype=np.float64)
        # Interpolation needs data[i + 1]; positions are increasing, so the
        # playable part is a prefix
        count = int(np.count_nonzero(positions < len(self.data) - 1))

        if count:
            pos = positions[:count]
            idx = pos.astype(np.int64)
            frac = (pos - idx).astype(np.float32)
            out[:count] = (self.data[idx] * (1.0 - frac) + self.data[idx + 1] * frac) * self.gain

        self.position += self.step * frames
        if count < frames:
            self.finished = True
        return out


class AudioSink(ABC):
    """Playback handle interface used by voices.

    Handles returned by start() are opaque to callers. set_gain() and stop()
    on a handle whose sound already finished are no-ops.
    """

    sample_rate: int = DEFAULT_SAMPLE_RATE
    underflows: int = 0

    def open(self) -> None:
        """Acquire the output device.

        Raises:
            UnsupportedEnvironment: If the host cannot play audio
        """

    def close(self) -> None:
        """Release the output device."""

    @abstractmethod
    def start(self, sample: DecodedSample, speed: float, gain: float):
        """Begin playing `sample` at `speed` times its native rate."""

    @abstractmethod
    def set_gain(self, handle, gain: float) -> None:
        """Change loudness of a sounding handle in place."""

    @abstractmethod
    def stop(self, handle) -> None:
        """Silence a handle immediately."""


class SoundDeviceSink(AudioSink):
    """Callback-mixed PortAudio output via sounddevice.

    Args:
        sample_rate: Output rate in Hz (default 44100)
        blocksize: Frames per callback (default 512)
        channels: Output channels; the mono mix is copied to each (default 2)
        device: Output device index or None for default
    """

    def __init__(self, sample_rate: int = DEFAULT_SAMPLE_RATE, blocksize: int = DEFAULT_BLOCKSIZE,
                 channels: int = 2, device: Optional[int] = None):
        self.sample_rate = sample_rate
        self.blocksize = blocksize
        self.channels = channels
        self.device = device
        self.stream = None
        self.lock = threading.Lock()  # Protects active playheads
        self.active: Dict[int, Playhead] = {}
        self._next_handle = 1
        self.underflows = 0

    def open(self) -> None:
        if self.stream is not None:
            return

        sd = _import_sounddevice()
        try:
            self.stream = sd.OutputStream(
                samplerate=self.sample_rate,
                blocksize=self.blocksize,
                channels=self.channels,
                dtype='float32',
                device=self.device,
                callback=self._callback,
            )
            self.stream.start()
        except Exception as e:
            self.stream = None
            raise UnsupportedEnvironment(f"Cannot open audio output: {e}") from e

        logger.info(f"Audio output open: {self.sample_rate}Hz, {self.channels}ch, blocksize {self.blocksize}")

    def close(self) -> None:
        if self.stream is None:
            return
        try:
            self.stream.stop()
            self.stream.close()
        except Exception as e:
            logger.warning(f"Failed to close audio stream: {e}")
        finally:
            self.stream = None
            with self.lock:
                self.active.clear()

    def start(self, sample: DecodedSample, speed: float, gain: float) -> int:
        step = speed * sample.sample_rate / self.sample_rate
        playhead = Playhead(sample.data, step, gain)
        with self.lock:
            handle = self._next_handle
            self._next_handle += 1
            self.active[handle] = playhead
        return handle

    def set_gain(self, handle: int, gain: float) -> None:
        with self.lock:
            playhead = self.active.get(handle)
            if playhead is not None:
                playhead.gain = gain

    def stop(self, handle: int) -> None:
        with self.lock:
            self.active.pop(handle, None)

    def mix(self, frames: int) -> np.ndarray:
        """Sum one block of every active playhead, dropping finished ones.

        Returns:
            1D float32 mono block clipped to [-1, 1]
        """
        block = np.zeros(frames, dtype=np.float32)
        with self.lock:
            for handle, playhead in list(self.active.items()):
                block += playhead.render(frames)
                if playhead.finished:
                    del self.active[handle]
        np.clip(block, -1.0, 1.0, out=block)
        return block

    def _callback(self, outdata, frames, time_info, status):
        if status:
            self.underflows += 1
        outdata[:] = self.mix(frames)[:, np.newaxis]
