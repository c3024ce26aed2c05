"""
Entry point for running the instrument as a module.

Usage:
    python -m ompler [--config PATH] [--midi-port NAME] ...
"""

from ompler.instrument import main

main()
