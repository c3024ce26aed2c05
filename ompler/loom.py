"""
Loom - the pitch table and the single routing entry point.

BARRIER:
    Every family reports exactly once: "voices ready" or "failed". A
    CountdownLatch over the family count fires when the last one reports,
    and only then is the pitch table built. Until that moment every incoming
    message is dropped.

PITCH TABLE:
    Families are walked in declared order, their voices in offset order.
    When two families cover the same pitch, the later one wins. The finished
    table is a read-only mapping of at most 128 entries and never changes
    afterwards.

ROUTING:
    route() looks the pitch up and hands the message to exactly one voice.
    Pitches no family covers are dropped silently. A voice that raises is
    logged and counted; the error never reaches the transport.
"""

import asyncio
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional

from ompler.family import SampleFamily
from ompler.log import get_logger
from ompler.messages import PerformanceMessage
from ompler.osc import MessageStatistics
from ompler.voice import Voice

logger = get_logger("loom")


class CountdownLatch:
    """Fires `on_zero` exactly once, when count_down() has been called `count` times.

    A latch created with count 0 fires immediately.
    """

    def __init__(self, count: int, on_zero: Callable[[], None]):
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        self.count = count
        self.on_zero = on_zero
        self.fired = False
        if count == 0:
            self._fire()

    def count_down(self) -> None:
        if self.fired:
            return
        self.count -= 1
        if self.count <= 0:
            self._fire()

    def _fire(self) -> None:
        self.fired = True
        self.on_zero()


class Loom:
    """Routes performance messages to the voice owning their pitch.

    Attributes:
        families (List[SampleFamily]): Families in registration order
        stats (MessageStatistics): Routing counters
        table (Mapping[int, Voice]): pitch -> voice, empty until ready
        ready (bool): True once every family has reported
    """

    def __init__(self, families: List[SampleFamily], stats: Optional[MessageStatistics] = None):
        self.families = list(families)
        self.stats = stats if stats is not None else MessageStatistics()
        self.table: Mapping[int, Voice] = MappingProxyType({})
        self.ready = False
        self._latch: Optional[CountdownLatch] = None
        self._ready_event = asyncio.Event()

    def await_all_families(self) -> None:
        """Arm the barrier over every family. Call once, before loading."""
        if self._latch is not None:
            raise RuntimeError("Barrier already armed")

        self._latch = CountdownLatch(len(self.families), self._on_all_settled)
        for family in self.families:
            family.on_voices_ready(self._on_family_settled)
            family.on_failed(self._on_family_settled)

    async def load_all(self) -> None:
        """Load every family concurrently; returns once all have reported."""
        if self._latch is None:
            self.await_all_families()
        await asyncio.gather(*(family.load() for family in self.families))

    async def wait_ready(self) -> None:
        await self._ready_event.wait()

    def _on_family_settled(self, family: SampleFamily) -> None:
        self._latch.count_down()

    def _on_all_settled(self) -> None:
        self.table = self._build_table()
        self.ready = True
        self._ready_event.set()

        failed = [f.name for f in self.families if f.failed]
        if failed:
            logger.warning(f"Ready with {len(self.table)} pitches, unavailable families: {', '.join(failed)}")
        else:
            logger.info(f"Ready: {len(self.table)} pitches across {len(self.families)} families")

    def _build_table(self) -> Mapping[int, Voice]:
        table: Dict[int, Voice] = {}
        for family in self.families:
            if family.bank is None:
                continue
            for voice in family.bank:
                previous = table.get(voice.pitch)
                if previous is not None:
                    logger.debug(
                        f"Pitch {voice.pitch}: family '{family.name}' replaces voice {previous!r}"
                    )
                table[voice.pitch] = voice
        return MappingProxyType(table)

    def voice_for(self, pitch: int) -> Optional[Voice]:
        return self.table.get(pitch)

    def route(self, message: PerformanceMessage) -> None:
        """Deliver a message to the voice owning its pitch, or drop it."""
        if not self.ready:
            self.stats.increment('early_messages')
            return

        voice = self.table.get(message.pitch)
        if voice is None:
            self.stats.increment('unmapped_messages')
            return

        try:
            voice.handle(message)
        except Exception as e:
            self.stats.increment('voice_errors')
            logger.warning(f"Voice for pitch {message.pitch} failed on {message.kind}: {e}")
            return

        self.stats.increment('routed_messages')

    def stop_all(self) -> None:
        """Silence every sounding voice."""
        for voice in self.table.values():
            if voice.is_sounding:
                try:
                    voice.stop()
                except Exception as e:
                    logger.warning(f"Failed to stop pitch {voice.pitch}: {e}")
