#!/usr/bin/env python3
"""
Generate placeholder family recordings for the bundled instrument config.

Creates one decaying additive tone per family (44.1kHz, mono, 16-bit WAV):
- 220.wav, 440.wav, 880.wav, 1760.wav, 3520.wav, 7040.wav

Usage:
    python3 scripts/generate_samples.py [output_dir]

Example:
    python3 scripts/generate_samples.py ompler/data/sounds/
"""

import sys
from pathlib import Path

import numpy as np
import soundfile as sf

FAMILY_FREQUENCIES = [220, 440, 880, 1760, 3520, 7040]


def generate_tone(freq_hz, duration=2.0, sample_rate=44100, harmonics=4, rolloff=1.5, decay=3.0):
    """Generate a plucked-style tone with harmonic rolloff and exponential decay.

    Args:
        freq_hz: Fundamental frequency in Hz
        duration: Length in seconds
        sample_rate: Sample rate in Hz
        harmonics: Number of harmonics (amplitude of nth = 1/n^rolloff)
        rolloff: Amplitude rolloff exponent
        decay: Exponential decay rate per second

    Returns:
        Mono float32 buffer peaking at 0.8
    """
    t = np.arange(int(duration * sample_rate)) / sample_rate
    signal = np.zeros(len(t), dtype=np.float64)

    nyquist = sample_rate / 2
    for n in range(1, harmonics + 1):
        if freq_hz * n >= nyquist:
            break
        signal += np.sin(2 * np.pi * freq_hz * n * t) / (n ** rolloff)

    signal *= np.exp(-decay * t)

    max_amplitude = np.max(np.abs(signal))
    if max_amplitude > 0:
        signal = 0.8 * signal / max_amplitude

    return signal.astype(np.float32)


def main():
    """Generate all family recordings."""
    output_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else Path(__file__).parent.parent / "ompler" / "data" / "sounds"
    output_dir.mkdir(parents=True, exist_ok=True)

    for freq in FAMILY_FREQUENCIES:
        path = output_dir / f"{freq}.wav"
        samples = generate_tone(freq)
        sf.write(str(path), samples, 44100, subtype='PCM_16')
        print(f"  Written: {path} ({len(samples)} samples)")

    print(f"\nGenerated {len(FAMILY_FREQUENCIES)} recordings in {output_dir}")


if __name__ == '__main__':
    main()
