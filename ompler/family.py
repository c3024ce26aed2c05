"""
Sample family - one recording, one asset, one voice bank.

The bank is built from the asset's readiness callback, never by polling.
Once built, the family tells its listeners which pitches it now serves. A
family whose asset fails to load logs the failure and tells its failure
listeners instead; it never builds voices, so its pitch range stays silent
while every other family keeps working.
"""

from typing import Callable, List, Optional

from ompler.asset import AssetSource, DecodedSample, SampleAsset
from ompler.bank import VoiceBank
from ompler.config import FamilyConfig
from ompler.errors import AssetUnavailable
from ompler.log import get_logger
from ompler.sink import AudioSink

logger = get_logger("family")


class SampleFamily:
    """Set of voices derived from a single recording.

    Attributes:
        config (FamilyConfig): Name, URL and offset range
        asset (SampleAsset): The recording
        sink (AudioSink): Audio output handed to every voice
        load_timeout (float or None): Seconds before the load counts as failed
        retrigger (bool): Passed to each voice
        failed (bool): True once the asset load has failed
    """

    def __init__(self, config: FamilyConfig, source: AssetSource, sink: AudioSink,
                 load_timeout: Optional[float] = None, retrigger: bool = False):
        self.config = config
        self.sink = sink
        self.load_timeout = load_timeout
        self.retrigger = retrigger
        self.failed = False

        self._bank: Optional[VoiceBank] = None
        self._ready_listeners: List[Callable[["SampleFamily"], None]] = []
        self._failed_listeners: List[Callable[["SampleFamily"], None]] = []

        self.asset = SampleAsset(config.url, source)
        self.asset.add_ready_listener(self._build_bank)

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def base_pitch(self) -> int:
        return self.config.base_pitch

    @property
    def bank(self) -> Optional[VoiceBank]:
        """Voice bank, None until the asset is ready."""
        return self._bank

    def on_voices_ready(self, listener: Callable[["SampleFamily"], None]) -> None:
        self._ready_listeners.append(listener)

    def on_failed(self, listener: Callable[["SampleFamily"], None]) -> None:
        self._failed_listeners.append(listener)

    async def load(self) -> None:
        """Load the recording. Failures are reported to listeners, not raised."""
        try:
            await self.asset.load(timeout=self.load_timeout)
        except AssetUnavailable as e:
            self.failed = True
            lo, hi = self.config.pitches[0], self.config.pitches[-1]
            logger.error(f"Family '{self.name}' unavailable, pitches {lo}..{hi} will be silent: {e}")
            for listener in self._failed_listeners:
                listener(self)

    def _build_bank(self, buffer: DecodedSample) -> None:
        self._bank = VoiceBank.build(
            buffer,
            self.config.base_pitch,
            self.config.min_offset,
            self.config.max_offset,
            self.sink,
            retrigger=self.retrigger,
        )
        pitches = self._bank.pitches
        logger.info(f"Family '{self.name}': voices ready for pitches {pitches[0]}..{pitches[-1]}")

        for listener in self._ready_listeners:
            listener(self)

    def __repr__(self):
        return f"SampleFamily(name={self.name!r}, base_pitch={self.base_pitch}, ready={self._bank is not None})"
