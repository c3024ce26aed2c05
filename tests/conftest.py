"""Pytest fixtures shared by the ompler test suite.

Provides reusable fixtures:
- sink: FakeSink that records start/set_gain/stop calls instead of playing
- sample: small decoded mono buffer
- make_sample: factory for decoded buffers of a given length and rate
- make_source: factory for FakeSource (prepared buffers, failures, gated loads)
- wav_file: factory writing WAV files into tmp_path

All fixtures are hardware-free: no audio device, MIDI port or network needed.
"""

import asyncio

import numpy as np
import pytest
import soundfile as sf

from ompler.asset import AssetSource, DecodedSample
from ompler.errors import AssetUnavailable, UnsupportedEnvironment
from ompler.sink import AudioSink


class FakeSink(AudioSink):
    """Records every playback call. Handles are sequential integers."""

    def __init__(self):
        self.fail_open = False
        self.calls = []
        self.opened = 0
        self.closed = 0
        self.active = {}
        self._next_handle = 1

    def open(self):
        if self.fail_open:
            raise UnsupportedEnvironment("no audio device")
        self.opened += 1

    def close(self):
        self.closed += 1
        self.active.clear()

    def start(self, sample, speed, gain):
        handle = self._next_handle
        self._next_handle += 1
        self.active[handle] = (sample, speed, gain)
        self.calls.append(("start", handle, speed, gain))
        return handle

    def set_gain(self, handle, gain):
        self.calls.append(("set_gain", handle, gain))

    def stop(self, handle):
        self.active.pop(handle, None)
        self.calls.append(("stop", handle))

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)


class FakeSource(AssetSource):
    """Serves buffers by URL.

    URLs mapped to an Exception raise it; unknown URLs raise AssetUnavailable.
    URLs listed in `gated` block until release(url) is called.
    """

    def __init__(self, samples=None, gated=()):
        self.samples = dict(samples or {})
        self.gated = set(gated)
        self.requested = []
        self.closed = False
        self._gates = {}

    def _gate(self, url):
        if url not in self._gates:
            self._gates[url] = asyncio.Event()
        return self._gates[url]

    def release(self, url):
        self._gate(url).set()

    async def load(self, url):
        self.requested.append(url)
        if url in self.gated:
            await self._gate(url).wait()
        result = self.samples.get(url)
        if result is None:
            raise AssetUnavailable(url, "not found")
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self):
        self.closed = True


def _decoded(frames=1000, sample_rate=44100):
    data = np.linspace(-0.5, 0.5, frames, dtype=np.float32)
    data.setflags(write=False)
    return DecodedSample(data=data, sample_rate=sample_rate)


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def sample():
    return _decoded()


@pytest.fixture
def make_sample():
    """Factory: make_sample(frames=1000, sample_rate=44100) -> DecodedSample."""
    return _decoded


@pytest.fixture
def make_source():
    """Factory: make_source(samples, gated=()) -> FakeSource."""
    return FakeSource


@pytest.fixture
def wav_file(tmp_path):
    """Factory writing a 440Hz sine WAV and returning its path.

    Example:
        def test_load(wav_file):
            path = wav_file("a.wav", channels=2)
    """
    def write(name="sample.wav", frames=4410, sample_rate=44100, channels=1):
        t = np.arange(frames) / sample_rate
        mono = (0.5 * np.sin(2 * np.pi * 440.0 * t)).astype(np.float32)
        data = mono if channels == 1 else np.column_stack([mono] * channels)
        path = tmp_path / name
        sf.write(str(path), data, sample_rate)
        return path

    return write
