"""
Tests for the Loom

Validates the readiness barrier, pitch-table precedence and message routing.
"""

import asyncio

import pytest

from ompler.config import FamilyConfig
from ompler.family import SampleFamily
from ompler.loom import CountdownLatch, Loom
from ompler.messages import PerformanceMessage
from ompler.voice import speed_from_offset


def build_loom(configs, source, sink):
    families = [SampleFamily(config, source, sink) for config in configs]
    return Loom(families)


def load(loom):
    async def scenario():
        await loom.load_all()
        await loom.wait_ready()
    asyncio.run(scenario())


class TestCountdownLatch:
    """Test single-shot latch behaviour."""

    def test_fires_once_at_zero(self):
        fired = []
        latch = CountdownLatch(2, lambda: fired.append(True))

        latch.count_down()
        assert fired == []
        latch.count_down()
        assert fired == [True]

        latch.count_down()
        assert fired == [True]

    def test_zero_count_fires_immediately(self):
        fired = []
        latch = CountdownLatch(0, lambda: fired.append(True))
        assert latch.fired
        assert fired == [True]

    def test_negative_count(self):
        with pytest.raises(ValueError):
            CountdownLatch(-1, lambda: None)


class TestBarrier:
    """Test that routing opens only after every family reports."""

    def test_table_empty_until_all_ready(self, make_source, sink, sample):
        source = make_source({"a.wav": sample, "b.wav": sample}, gated={"b.wav"})
        loom = build_loom([FamilyConfig("a", "a.wav", 57), FamilyConfig("b", "b.wav", 69)], source, sink)
        observed = {}

        async def scenario():
            task = asyncio.ensure_future(loom.load_all())
            # Let family A finish while B is still gated
            for _ in range(20):
                await asyncio.sleep(0)
            observed["a_built"] = loom.families[0].bank is not None
            observed["ready_early"] = loom.ready
            observed["table_early"] = len(loom.table)

            loom.route(PerformanceMessage.note_on(57, 64))

            source.release("b.wav")
            await task
            await loom.wait_ready()

        asyncio.run(scenario())

        assert observed == {"a_built": True, "ready_early": False, "table_early": 0}
        assert loom.ready
        assert loom.stats.get("early_messages") == 1
        assert sink.calls == []

    def test_failed_family_does_not_block(self, make_source, sink, sample):
        source = make_source({"a.wav": sample})
        loom = build_loom([FamilyConfig("a", "a.wav", 57), FamilyConfig("b", "missing.wav", 81)], source, sink)

        load(loom)

        assert loom.ready
        assert set(loom.table) == set(range(51, 63))
        loom.route(PerformanceMessage.note_on(81, 64))
        assert sink.calls == []
        assert loom.stats.get("unmapped_messages") == 1

    def test_all_families_failed(self, make_source, sink):
        loom = build_loom([FamilyConfig("a", "a.wav", 57)], make_source({}), sink)
        load(loom)
        assert loom.ready
        assert len(loom.table) == 0

    def test_no_families(self, sink):
        loom = Loom([])
        loom.await_all_families()
        assert loom.ready

    def test_arming_twice(self, sink):
        loom = Loom([])
        loom.await_all_families()
        with pytest.raises(RuntimeError):
            loom.await_all_families()


class TestPitchTable:
    """Test deterministic table construction."""

    def test_overlap_last_registered_wins(self, make_source, sink, make_sample):
        a, b = make_sample(100), make_sample(200)
        source = make_source({"a.wav": a, "b.wav": b})
        loom = build_loom([
            FamilyConfig("A", "a.wav", 57, -6, 6),
            FamilyConfig("B", "b.wav", 69, -6, 5),
        ], source, sink)

        load(loom)

        voice = loom.voice_for(63)
        assert voice.base_pitch == 69
        assert voice.offset == -6
        assert voice.buffer is b
        assert voice.speed == pytest.approx(2 ** (-6 / 12))

        # A still owns the rest of its range
        assert loom.voice_for(62).base_pitch == 57
        assert loom.families[0].bank.voice_for_offset(6).speed == pytest.approx(2 ** (6 / 12))

    def test_overlap_order_reversed(self, make_source, sink, make_sample):
        source = make_source({"a.wav": make_sample(100), "b.wav": make_sample(200)})
        loom = build_loom([
            FamilyConfig("B", "b.wav", 69, -6, 5),
            FamilyConfig("A", "a.wav", 57, -6, 6),
        ], source, sink)

        load(loom)

        voice = loom.voice_for(63)
        assert voice.base_pitch == 57
        assert voice.offset == 6
        assert voice.speed == pytest.approx(1.41421356)

    def test_table_is_read_only(self, make_source, sink, sample):
        loom = build_loom([FamilyConfig("a", "a.wav", 60)], make_source({"a.wav": sample}), sink)
        load(loom)
        with pytest.raises(TypeError):
            loom.table[0] = None

    def test_default_families_cover_36_to_127(self, make_source, sink, sample):
        from ompler.config import default_families
        families = default_families()
        source = make_source({f.url: sample for f in families})
        loom = build_loom(families, source, sink)

        load(loom)

        assert sorted(loom.table) == list(range(36, 128))
        assert loom.voice_for(36).speed == speed_from_offset(-21)
        assert loom.voice_for(127).base_pitch == 117


class TestRouting:
    """Test message delivery."""

    def test_routes_to_exactly_one_voice(self, make_source, sink, sample):
        loom = build_loom([FamilyConfig("a", "a.wav", 60)], make_source({"a.wav": sample}), sink)
        load(loom)

        loom.route(PerformanceMessage.note_on(62, 64))

        assert loom.voice_for(62).is_sounding
        assert sum(voice.is_sounding for voice in loom.table.values()) == 1
        assert sink.calls == [("start", 1, speed_from_offset(2), 0.5)]
        assert loom.stats.get("routed_messages") == 1

    def test_unmapped_pitch_is_silent(self, make_source, sink, sample):
        loom = build_loom([FamilyConfig("a", "a.wav", 60)], make_source({"a.wav": sample}), sink)
        load(loom)

        loom.route(PerformanceMessage.note_on(0, 64))
        loom.route(PerformanceMessage.note_off(127))

        assert sink.calls == []
        assert loom.stats.get("unmapped_messages") == 2

    def test_voice_error_is_isolated(self, make_source, sink, sample):
        loom = build_loom([FamilyConfig("a", "a.wav", 60)], make_source({"a.wav": sample}), sink)
        load(loom)

        def broken_start(sample, speed, gain):
            raise RuntimeError("device lost")
        sink.start = broken_start

        loom.route(PerformanceMessage.note_on(60, 64))
        assert loom.stats.get("voice_errors") == 1
        assert loom.stats.get("routed_messages") == 0

    def test_stop_all(self, make_source, sink, sample):
        loom = build_loom([FamilyConfig("a", "a.wav", 60)], make_source({"a.wav": sample}), sink)
        load(loom)
        loom.route(PerformanceMessage.note_on(60, 64))
        loom.route(PerformanceMessage.note_on(61, 64))

        loom.stop_all()

        assert not any(voice.is_sounding for voice in loom.table.values())
        assert sink.count("stop") == 2
