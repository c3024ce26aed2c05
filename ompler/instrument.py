#!/usr/bin/env python3
"""
Ompler Instrument - a playable sampler built from a few recordings.

ARCHITECTURE:
- Each configured family is one recording stretched over a range of pitches
  by playback-rate scaling (speed = 2 ** (offset / 12))
- All recordings load concurrently on activation; the loom opens for
  routing once every family has either built its voices or failed
- MIDI (mido callback thread) and OSC (asyncio datagram endpoint) both feed
  Instrument.handle_message on the event loop thread, so every voice
  transition is serialized and happens in delivery order
- One SoundDeviceSink is shared by every voice

ACTIVATION MODES:
- start:      open audio and begin loading at startup
- first-note: wait for the first incoming message (a user gesture), then
              activate; that message is dropped like any other early message

Usage:
    python -m ompler
    python -m ompler --midi-port Keystation --device pulse
    python -m ompler --config my_families.yaml --no-osc --activate first-note
    python -m ompler --list-ports
"""

import argparse
import asyncio
import os
import signal
import sys
from typing import Optional

from ompler import osc
from ompler.asset import AssetSource, UrlAssetSource
from ompler.config import DEFAULT_CONFIG_PATH, InstrumentConfig, load_config
from ompler.errors import UnsupportedEnvironment
from ompler.family import SampleFamily
from ompler.log import get_logger, set_level
from ompler.loom import Loom
from ompler.messages import PerformanceMessage
from ompler.midi import MidiInput, find_input_port, list_input_ports
from ompler.sink import AudioSink, SoundDeviceSink, find_audio_device

logger = get_logger("instrument")

ACTIVATE_START = "start"
ACTIVATE_FIRST_NOTE = "first-note"
ACTIVATION_MODES = (ACTIVATE_START, ACTIVATE_FIRST_NOTE)


class Instrument:
    """Façade tying configuration, audio output, families and the loom together.

    Must be used from a running event loop: activation schedules the family
    loads as a task on it.

    Args:
        config: Families and loading options
        sink: Audio output shared by every voice
        source: Asset fetch/decode collaborator (default: UrlAssetSource
            resolving relative paths against config.base_dir)
        stats: Shared statistics (default: new tracker)
        activation: ACTIVATE_START or ACTIVATE_FIRST_NOTE

    Attributes:
        loom (Loom or None): Created on activation
        error (Exception or None): Activation failure raised from handle_message
        stopped (asyncio.Event): Set when the instrument can no longer play
    """

    def __init__(self, config: InstrumentConfig, sink: AudioSink, source: Optional[AssetSource] = None,
                 stats: Optional[osc.MessageStatistics] = None, activation: str = ACTIVATE_START):
        if activation not in ACTIVATION_MODES:
            raise ValueError(f"Unknown activation mode '{activation}', expected one of {ACTIVATION_MODES}")

        self.config = config
        self.sink = sink
        self.source = source if source is not None else UrlAssetSource(base_dir=config.base_dir)
        self.stats = stats if stats is not None else osc.MessageStatistics()
        self.activation = activation

        self.loom: Optional[Loom] = None
        self.error: Optional[Exception] = None
        self.stopped = asyncio.Event()
        self._activated = asyncio.Event()
        self._load_task: Optional[asyncio.Task] = None

    @property
    def activated(self) -> bool:
        return self.loom is not None

    def activate(self) -> None:
        """Open the audio output and start loading every family.

        Idempotent.

        Raises:
            UnsupportedEnvironment: If audio output cannot be opened; the
                instrument stays inactive
        """
        if self.activated:
            return

        try:
            self.sink.open()
        except UnsupportedEnvironment as e:
            logger.error(f"Cannot start instrument: {e}")
            raise

        families = [
            SampleFamily(
                family_config,
                self.source,
                self.sink,
                load_timeout=self.config.load_timeout,
                retrigger=self.config.retrigger,
            )
            for family_config in self.config.families
        ]
        self.loom = Loom(families, stats=self.stats)
        self.loom.await_all_families()
        self._load_task = asyncio.get_running_loop().create_task(self.loom.load_all())
        self._activated.set()
        logger.info(f"Activated, loading {len(families)} families")

    def handle_message(self, message: PerformanceMessage) -> None:
        """Single routing entry point for every transport. Never raises."""
        if not self.activated:
            self.stats.increment('early_messages')
            if self.activation == ACTIVATE_FIRST_NOTE and self.error is None:
                try:
                    self.activate()
                except UnsupportedEnvironment as e:
                    self.error = e
                    self.stopped.set()
            return

        self.loom.route(message)

    async def wait_ready(self) -> None:
        """Wait until activation has happened and every family has reported.

        Raises:
            UnsupportedEnvironment: If activation failed
            RuntimeError: If the instrument stopped before it was activated
        """
        if not self._activated.is_set():
            activated = asyncio.ensure_future(self._activated.wait())
            stopped = asyncio.ensure_future(self.stopped.wait())
            try:
                await asyncio.wait([activated, stopped], return_when=asyncio.FIRST_COMPLETED)
            finally:
                activated.cancel()
                stopped.cancel()

            if self.error is not None:
                raise self.error
            if not self.activated:
                raise RuntimeError("Instrument stopped before activation")

        await self.loom.wait_ready()

    async def close(self) -> None:
        """Silence voices and release audio and network resources."""
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
            try:
                await self._load_task
            except asyncio.CancelledError:
                pass

        if self.loom is not None:
            self.loom.stop_all()
        self.sink.close()
        await self.source.close()
        self.stopped.set()


async def run(config: InstrumentConfig, sink: AudioSink, midi_port: Optional[str] = None,
              osc_port: Optional[int] = osc.PORT_NOTES, activation: str = ACTIVATE_START,
              stats: Optional[osc.MessageStatistics] = None) -> None:
    """Run the instrument until SIGINT/SIGTERM.

    Args:
        config: Instrument configuration
        sink: Audio output
        midi_port: MIDI input name fragment (None: first available port, if any)
        osc_port: UDP port for OSC input (None: no OSC)
        activation: ACTIVATE_START or ACTIVATE_FIRST_NOTE
        stats: Shared statistics

    Raises:
        RuntimeError: If no input transport is available
        UnsupportedEnvironment: If audio output cannot be opened
    """
    loop = asyncio.get_running_loop()
    stats = stats if stats is not None else osc.MessageStatistics()
    instrument = Instrument(config, sink, stats=stats, activation=activation)

    midi_input = None
    note_server = None

    try:
        if activation == ACTIVATE_START:
            instrument.activate()

        port_name = find_input_port(midi_port)
        if port_name is not None:
            midi_input = MidiInput(port_name, instrument.handle_message, loop, stats=stats)
            midi_input.open()
        elif midi_port is not None:
            raise RuntimeError(f"No MIDI input port matching '{midi_port}'")
        else:
            logger.info("No MIDI input ports available")

        if osc_port is not None:
            note_server = osc.NoteServer(instrument.handle_message, port=osc_port, stats=stats)
            await note_server.start()

        if midi_input is None and note_server is None:
            raise RuntimeError("No input: no MIDI port found and OSC disabled")

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, instrument.stopped.set)

        if activation == ACTIVATE_FIRST_NOTE:
            logger.info("Waiting for the first note to activate")
        logger.info("Instrument running. Press Ctrl+C to exit.")

        await instrument.stopped.wait()
        if instrument.error is not None:
            raise instrument.error
    finally:
        if midi_input is not None:
            midi_input.close()
        if note_server is not None:
            note_server.close()
        await instrument.close()
        if sink.underflows:
            stats.increment('audio_underflows', sink.underflows)
        stats.print_stats("OMPLER STATISTICS")


def main():
    """Main entry point with command-line argument parsing.

    Exits with code 1 if the configuration is missing or invalid, the OSC
    port is out of range, no input is available or audio output cannot be
    opened.
    """
    parser = argparse.ArgumentParser(description="Ompler - rate-scaled sample instrument")
    parser.add_argument(
        "--config",
        type=str,
        default=str(DEFAULT_CONFIG_PATH),
        help="Path to YAML families config (default: bundled families.yaml)",
    )
    parser.add_argument(
        "--midi-port",
        type=str,
        default=None,
        help="MIDI input name substring (default: first available port)",
    )
    parser.add_argument(
        "--list-ports",
        action="store_true",
        help="List MIDI input ports and exit",
    )
    parser.add_argument(
        "--osc-port",
        type=int,
        default=osc.PORT_NOTES,
        help=f"UDP port for OSC note input (default: {osc.PORT_NOTES})",
    )
    parser.add_argument(
        "--no-osc",
        action="store_true",
        help="Disable OSC note input",
    )
    parser.add_argument(
        "--device",
        type=str,
        default=None,
        help="Audio device substring to match (e.g., 'pulse'). Overrides the config file.",
    )
    parser.add_argument(
        "--activate",
        choices=ACTIVATION_MODES,
        default=ACTIVATE_START,
        help="Start audio immediately or on the first incoming note (default: start)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv("OMPLER_LOG_LEVEL", "INFO"),
        help="Logging verbosity (default: INFO)",
    )

    args = parser.parse_args()
    set_level(args.log_level)

    if args.list_ports:
        ports = list_input_ports()
        if not ports:
            print("No MIDI input ports")
        for port in ports:
            print(port)
        sys.exit(0)

    osc_port = None if args.no_osc else args.osc_port
    if osc_port is not None:
        try:
            osc.validate_port(osc_port)
        except ValueError as e:
            logger.error(f"{e}")
            sys.exit(1)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, RuntimeError) as e:
        logger.error(f"{e}")
        sys.exit(1)

    device_name = args.device if args.device is not None else config.audio.device
    device = None
    if device_name is not None:
        try:
            device = find_audio_device(device_name)
        except UnsupportedEnvironment as e:
            logger.error(f"{e}")
            sys.exit(1)

    sink = SoundDeviceSink(
        sample_rate=config.audio.sample_rate,
        blocksize=config.audio.blocksize,
        device=device,
    )

    try:
        asyncio.run(run(config, sink, midi_port=args.midi_port, osc_port=osc_port, activation=args.activate))
    except UnsupportedEnvironment:
        # Already logged on activation
        sys.exit(1)
    except (RuntimeError, ValueError) as e:
        logger.error(f"{e}")
        sys.exit(1)
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {osc_port} already in use")
        else:
            logger.error(f"{e}")
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
