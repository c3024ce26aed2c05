"""
Ompler OSC Infrastructure - network input for performance messages.

Lets a controller that speaks OSC instead of MIDI play the instrument, and
provides the shared statistics tracker used by the server and the loom.

Classes:
    - MessageStatistics: Thread-safe message counter with formatted output
    - NoteServer: asyncio OSC server that feeds valid messages to the instrument

Functions:
    - parse_osc_message(address, args): Validate an OSC note message
    - validate_port(port): Validate port in range 1-65535

Constants:
    - PORT_NOTES: Performance message input (8010)

ADDRESSES:
    /note/on     [pitch, velocity]   velocity 0-127 (0 behaves as noteOff)
    /note/off    [pitch]             optional release velocity is ignored
    /aftertouch  [pitch, pressure]   pressure 0-127
"""

import asyncio
import threading
from typing import Callable, Optional, Tuple

from pythonosc.dispatcher import Dispatcher
from pythonosc.osc_server import AsyncIOOSCUDPServer

from ompler.log import get_logger
from ompler.messages import AFTERTOUCH, NOTE_OFF, NOTE_ON, PerformanceMessage, parse_message

logger = get_logger("osc")


# ============================================================================
# CONSTANTS
# ============================================================================

PORT_NOTES = 8010

# Port validation range
PORT_MIN = 1
PORT_MAX = 65535

ADDRESS_NOTE_ON = "/note/on"
ADDRESS_NOTE_OFF = "/note/off"
ADDRESS_AFTERTOUCH = "/aftertouch"

# address -> (message kind, name of the level field, argument count range)
ADDRESS_KINDS = {
    ADDRESS_NOTE_ON: (NOTE_ON, "velocity", (2, 2)),
    ADDRESS_NOTE_OFF: (NOTE_OFF, "velocity", (1, 2)),
    ADDRESS_AFTERTOUCH: (AFTERTOUCH, "pressure", (2, 2)),
}


# ============================================================================
# VALIDATION FUNCTIONS
# ============================================================================

def parse_osc_message(address: str, args) -> Tuple[bool, Optional[PerformanceMessage], Optional[str]]:
    """Validate an OSC note message and convert it to a PerformanceMessage.

    Args:
        address: OSC address string (e.g., "/note/on")
        args: OSC arguments

    Returns:
        Tuple of (is_valid, message, error_message):
            - is_valid: True if address and arguments are well-formed
            - message: Normalized PerformanceMessage, None if invalid
            - error_message: Human-readable error if invalid, None if valid

    Examples:
        >>> parse_osc_message("/note/on", [60, 64])[0]
        True
        >>> parse_osc_message("/note/bend", [60])
        (False, None, 'Invalid address pattern: /note/bend')
    """
    if address not in ADDRESS_KINDS:
        return False, None, f"Invalid address pattern: {address}"

    kind, level_field, (min_args, max_args) = ADDRESS_KINDS[address]
    args = list(args)
    if not min_args <= len(args) <= max_args:
        expected = str(min_args) if min_args == max_args else f"{min_args}-{max_args}"
        return False, None, f"Expected {expected} arguments for {address}, got {len(args)}"

    wire = {"kind": kind, "pitch": args[0]}
    if kind != NOTE_OFF:
        wire[level_field] = args[1]

    return parse_message(wire)


def validate_port(port: int) -> None:
    """Validate UDP port number is in valid range.

    Raises:
        ValueError: If port is outside range 1-65535
    """
    if port < PORT_MIN or port > PORT_MAX:
        raise ValueError(f"Port must be in range {PORT_MIN}-{PORT_MAX}, got {port}")


# ============================================================================
# MESSAGE STATISTICS
# ============================================================================

class MessageStatistics:
    """Thread-safe message statistics tracker with formatted output.

    Typical counters:
        - total_messages: All received OSC messages
        - valid_messages: Messages that passed validation
        - invalid_messages: Messages that failed validation
        - routed_messages: Messages delivered to a voice
        - unmapped_messages: Messages for pitches no voice covers
        - early_messages: Messages dropped before every family settled
        - voice_errors: Voice failures isolated by the loom

    Attributes:
        counters (dict): Dictionary of counter_name -> count
        lock (threading.Lock): Thread-safe increment protection

    Examples:
        >>> stats = MessageStatistics()
        >>> stats.increment('routed_messages')
        >>> stats.get('routed_messages')
        1
    """

    def __init__(self):
        self.counters = {}
        self.lock = threading.Lock()

    def increment(self, counter_name: str, amount: int = 1) -> None:
        """Increment a counter, creating it at 0 first if needed."""
        with self.lock:
            self.counters[counter_name] = self.counters.get(counter_name, 0) + amount

    def get(self, counter_name: str) -> int:
        """Current value of a counter, or 0 if it was never incremented."""
        with self.lock:
            return self.counters.get(counter_name, 0)

    def print_stats(self, title: str = "STATISTICS") -> None:
        """Print formatted statistics to console.

        Output format:
            ============================================================
            TITLE
            ============================================================
            Counter Name: value
            ...
            ============================================================
        """
        print("\n" + "=" * 60)
        print(title)
        print("=" * 60)

        # Snapshot counters under lock, print without holding it
        with self.lock:
            snapshot = dict(self.counters)

        for name in sorted(snapshot.keys()):
            display_name = name.replace('_', ' ').title()
            print(f"{display_name}: {snapshot[name]}")

        print("=" * 60)


# ============================================================================
# NOTE SERVER
# ============================================================================

class NoteServer:
    """OSC input for performance messages, served on the running event loop.

    Valid messages are passed to `deliver` on the loop thread, in arrival
    order. Invalid ones are counted and logged at warning.

    Args:
        deliver: Callable taking a PerformanceMessage
        port: UDP port to listen on (default: 8010)
        host: Interface to bind (default: all)
        stats: Shared statistics (default: new tracker)
    """

    def __init__(self, deliver: Callable[[PerformanceMessage], None], port: int = PORT_NOTES,
                 host: str = "0.0.0.0", stats: Optional[MessageStatistics] = None):
        validate_port(port)
        self.deliver = deliver
        self.port = port
        self.host = host
        self.stats = stats if stats is not None else MessageStatistics()
        self.transport = None

        self.dispatcher = Dispatcher()
        for address in ADDRESS_KINDS:
            self.dispatcher.map(address, self.handle_osc_message)
        self.dispatcher.set_default_handler(self.handle_osc_message)

    def handle_osc_message(self, address: str, *args) -> None:
        self.stats.increment('total_messages')

        is_valid, message, error = parse_osc_message(address, args)
        if not is_valid:
            self.stats.increment('invalid_messages')
            logger.warning(f"Rejected OSC message {address} {list(args)}: {error}")
            return

        self.stats.increment('valid_messages')
        self.deliver(message)

    async def start(self) -> None:
        """Bind the UDP endpoint on the running loop."""
        server = AsyncIOOSCUDPServer((self.host, self.port), self.dispatcher, asyncio.get_running_loop())
        self.transport, _ = await server.create_serve_endpoint()
        logger.info(f"Listening for OSC notes on {self.host}:{self.port}")

    def close(self) -> None:
        if self.transport is not None:
            self.transport.close()
            self.transport = None
