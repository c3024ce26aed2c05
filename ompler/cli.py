#!/usr/bin/env python3
"""
Command-line tool for playing the instrument over OSC.

Usage:
    python -m ompler.cli <kind> <pitch> [level] [--host HOST] [--port PORT]

Examples:
    ompler-send noteOn 60 100
    ompler-send aftertouch 60 40
    ompler-send noteOff 60
"""

import argparse
import sys

from pythonosc.udp_client import SimpleUDPClient

from ompler.messages import AFTERTOUCH, MESSAGE_KINDS, NOTE_OFF, NOTE_ON, parse_message
from ompler.osc import (
    ADDRESS_AFTERTOUCH,
    ADDRESS_NOTE_OFF,
    ADDRESS_NOTE_ON,
    PORT_NOTES,
    validate_port,
)

KIND_ADDRESSES = {
    NOTE_ON: ADDRESS_NOTE_ON,
    NOTE_OFF: ADDRESS_NOTE_OFF,
    AFTERTOUCH: ADDRESS_AFTERTOUCH,
}


def parse_argument(arg: str):
    """Parse a command-line argument to int or float, keeping strings otherwise."""
    try:
        return int(arg)
    except ValueError:
        pass
    try:
        return float(arg)
    except ValueError:
        pass
    return arg


def build_osc_message(kind: str, pitch, level=None):
    """Validate a message and return its OSC (address, args).

    Raises:
        ValueError: If the kind, pitch or level is invalid
    """
    wire = {"kind": kind, "pitch": pitch}
    if level is not None:
        wire["pressure" if kind == AFTERTOUCH else "velocity"] = level

    is_valid, _, error = parse_message(wire)
    if not is_valid:
        raise ValueError(error)

    if kind == NOTE_OFF:
        return KIND_ADDRESSES[kind], [pitch]
    return KIND_ADDRESSES[kind], [pitch, level if level is not None else 0]


def send_note_message(kind: str, pitch, level=None, host: str = "127.0.0.1", port: int = PORT_NOTES):
    """Send one performance message to a running instrument."""
    address, args = build_osc_message(kind, pitch, level)
    client = SimpleUDPClient(host, port)
    client.send_message(address, args)
    print(f"Sent to {host}:{port} → {address} {args}")


def main(argv=None):
    """CLI entry point for sending performance messages."""
    parser = argparse.ArgumentParser(description="Send one performance message to ompler over OSC")
    parser.add_argument("kind", choices=MESSAGE_KINDS, help="Message kind")
    parser.add_argument("pitch", help="Pitch 0-127")
    parser.add_argument("level", nargs="?", default=None, help="Velocity or pressure 0-127")
    parser.add_argument("--host", default="127.0.0.1", help="Instrument host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=PORT_NOTES, help=f"OSC port (default: {PORT_NOTES})")
    args = parser.parse_args(argv)

    try:
        validate_port(args.port)
        level = parse_argument(args.level) if args.level is not None else None
        send_note_message(args.kind, parse_argument(args.pitch), level, host=args.host, port=args.port)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
