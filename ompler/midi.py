"""
MIDI input - hands note and key-pressure events from a MIDI port to the loop.

mido delivers messages on its own callback thread. Each one is converted to
a PerformanceMessage there and scheduled onto the asyncio loop with
call_soon_threadsafe, so routing and every voice transition happen on the
loop thread, in the order the port delivered them.
"""

import asyncio
from typing import Callable, List, Optional

import mido

from ompler.log import get_logger
from ompler.messages import PerformanceMessage, from_mido
from ompler.osc import MessageStatistics

logger = get_logger("midi")


def list_input_ports() -> List[str]:
    return mido.get_input_names()


def find_input_port(substring: Optional[str] = None) -> Optional[str]:
    """Find a MIDI input port by case-insensitive name fragment.

    Args:
        substring: Name fragment, or None for the first available port

    Returns:
        Full port name, or None if nothing matches
    """
    ports = list_input_ports()
    if substring is None:
        return ports[0] if ports else None

    substring_lower = substring.lower()
    for port in ports:
        if substring_lower in port.lower():
            return port
    return None


class MidiInput:
    """One open MIDI input port feeding the instrument.

    Args:
        port_name: Full mido port name
        deliver: Called on the loop thread with each PerformanceMessage
        loop: Event loop that owns routing
        stats: Counts 'midi_messages' and 'ignored_midi_messages'
    """

    def __init__(self, port_name: str, deliver: Callable[[PerformanceMessage], None],
                 loop: asyncio.AbstractEventLoop, stats: Optional[MessageStatistics] = None):
        self.port_name = port_name
        self.deliver = deliver
        self.loop = loop
        self.stats = stats if stats is not None else MessageStatistics()
        self.port = None

    def open(self) -> None:
        self.port = mido.open_input(self.port_name, callback=self._on_midi)
        logger.info(f"Listening on MIDI input '{self.port_name}'")

    def close(self) -> None:
        if self.port is None:
            return
        self.port.close()
        self.port = None
        logger.info(f"Closed MIDI input '{self.port_name}'")

    def _on_midi(self, msg) -> None:
        # mido callback thread
        self.stats.increment('midi_messages')
        message = from_mido(msg)
        if message is None:
            self.stats.increment('ignored_midi_messages')
            return
        self.loop.call_soon_threadsafe(self.deliver, message)
