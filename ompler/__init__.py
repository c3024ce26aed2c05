"""
Ompler - a playable sampler built from a few pitched recordings.

Modules:
    messages: Performance messages and their wire format
    asset: Asynchronous sample loading and decoding
    voice: One pitch played by rate-scaling a shared recording
    bank: Voices for every offset of one family
    family: One recording, its asset and its voice bank
    loom: Readiness barrier, pitch table and routing
    sink: Audio output shared by every voice
    instrument: Façade and command-line runner
    midi, osc: Input transports
    cli: OSC send tool
"""

__version__ = "0.1.0"

# Submodules are imported explicitly: from ompler import loom, voice
