"""
Instrument configuration - sample families, loading and audio settings.

YAML FORMAT (ompler/data/families.yaml):

    load_timeout: null        # seconds; null waits forever
    retrigger: false          # repeated noteOn restarts instead of updating gain
    audio:
      sample_rate: 44100
      blocksize: 512
      device: null            # output device name substring
    families:
      - name: "220"
        url: sounds/220.wav   # path (relative to this file), file:// or http(s)://
        base_pitch: 57
        min_offset: -21
        max_offset: 5

Families are registered in the order listed. When two families cover the
same pitch, the one listed later owns it.

The bundled config and default_families() both read their recordings from
ompler/data/sounds/, which scripts/generate_samples.py fills. Any other
sample set needs its own config file (--config).
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from ompler.log import get_logger
from ompler.messages import PITCH_MAX, PITCH_MIN
from ompler.sink import DEFAULT_BLOCKSIZE, DEFAULT_SAMPLE_RATE

logger = get_logger("config")

DATA_DIR = Path(__file__).parent / "data"
DEFAULT_CONFIG_PATH = DATA_DIR / "families.yaml"

# Playback rate limit: 2 ** (21 / 12) ~= 3.36, the largest semitone ratio under 3.4
SHIFT_LIMIT_SEMITONES = 21

DEFAULT_MIN_OFFSET = -6
DEFAULT_MAX_OFFSET = 5


@dataclass
class FamilyConfig:
    """One recording and the offsets derived from it.

    Attributes:
        name (str): Label used in logs
        url (str): Location of the recording
        base_pitch (int): Native pitch of the recording
        min_offset (int): Lowest semitone offset (inclusive)
        max_offset (int): Highest semitone offset (inclusive)
    """
    name: str
    url: str
    base_pitch: int
    min_offset: int = DEFAULT_MIN_OFFSET
    max_offset: int = DEFAULT_MAX_OFFSET

    @property
    def pitches(self) -> range:
        return range(self.base_pitch + self.min_offset, self.base_pitch + self.max_offset + 1)


@dataclass
class AudioConfig:
    sample_rate: int = DEFAULT_SAMPLE_RATE
    blocksize: int = DEFAULT_BLOCKSIZE
    device: Optional[str] = None


def default_families() -> List[FamilyConfig]:
    """Six recordings an octave apart covering pitches 36-127, relative to DATA_DIR."""
    return [
        FamilyConfig("220", "sounds/220.wav", 57, -21, 5),
        FamilyConfig("440", "sounds/440.wav", 69),
        FamilyConfig("880", "sounds/880.wav", 81),
        FamilyConfig("1760", "sounds/1760.wav", 93),
        FamilyConfig("3520", "sounds/3520.wav", 105),
        FamilyConfig("7040", "sounds/7040.wav", 117, -6, 10),
    ]


@dataclass
class InstrumentConfig:
    """Top-level instrument settings.

    Attributes:
        families (List[FamilyConfig]): Sample families in registration order
        load_timeout (float or None): Seconds before a stalled load fails
        retrigger (bool): Repeated noteOn restarts the sounding voice
        audio (AudioConfig): Output stream settings
        base_dir (Path): Directory relative sample paths resolve against
    """
    families: List[FamilyConfig] = field(default_factory=default_families)
    load_timeout: Optional[float] = None
    retrigger: bool = False
    audio: AudioConfig = field(default_factory=AudioConfig)
    base_dir: Path = DATA_DIR


def validate_family(family: FamilyConfig) -> None:
    """Check a family's pitch range.

    Raises:
        RuntimeError: If the offset range is empty or leaves the 0-127 pitch domain

    Offsets past SHIFT_LIMIT_SEMITONES only produce a warning: the playback
    engine may not honour such rates, but that is not checked at runtime.
    """
    if family.min_offset > family.max_offset:
        raise RuntimeError(
            f"Family '{family.name}': min_offset {family.min_offset} > max_offset {family.max_offset}"
        )

    lo, hi = family.pitches[0], family.pitches[-1]
    if lo < PITCH_MIN or hi > PITCH_MAX:
        raise RuntimeError(
            f"Family '{family.name}': pitches {lo}..{hi} outside {PITCH_MIN}..{PITCH_MAX}"
        )

    if -family.min_offset > SHIFT_LIMIT_SEMITONES or family.max_offset > SHIFT_LIMIT_SEMITONES:
        logger.warning(
            f"Family '{family.name}': offsets {family.min_offset}..{family.max_offset} exceed "
            f"±{SHIFT_LIMIT_SEMITONES} semitones, playback rate may be unsupported"
        )


def _require_int(section: str, key: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise RuntimeError(f"{section}: '{key}' must be an integer, got {value!r}")
    return value


def _parse_family(index: int, entry) -> FamilyConfig:
    section = f"families[{index}]"
    if not isinstance(entry, dict):
        raise RuntimeError(f"{section} must be a mapping")

    for key in ("url", "base_pitch"):
        if key not in entry:
            raise RuntimeError(f"{section} missing '{key}'")

    family = FamilyConfig(
        name=str(entry.get("name", index)),
        url=str(entry["url"]),
        base_pitch=_require_int(section, "base_pitch", entry["base_pitch"]),
        min_offset=_require_int(section, "min_offset", entry.get("min_offset", DEFAULT_MIN_OFFSET)),
        max_offset=_require_int(section, "max_offset", entry.get("max_offset", DEFAULT_MAX_OFFSET)),
    )
    validate_family(family)
    return family


def parse_config(data: dict, base_dir: Optional[Path] = None) -> InstrumentConfig:
    """Build an InstrumentConfig from a decoded YAML mapping.

    Args:
        data: Decoded YAML document
        base_dir: Directory relative sample paths resolve against (default: DATA_DIR)

    Returns:
        Validated InstrumentConfig

    Raises:
        RuntimeError: If the structure or any value is invalid
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise RuntimeError("Config must be a mapping")

    config = InstrumentConfig(base_dir=Path(base_dir) if base_dir else DATA_DIR)

    if "families" in data:
        entries = data["families"]
        if not isinstance(entries, list):
            raise RuntimeError("'families' must be a list")
        config.families = [_parse_family(i, entry) for i, entry in enumerate(entries)]
    else:
        for family in config.families:
            validate_family(family)

    load_timeout = data.get("load_timeout")
    if load_timeout is not None:
        if isinstance(load_timeout, bool) or not isinstance(load_timeout, (int, float)) or load_timeout <= 0:
            raise RuntimeError(f"'load_timeout' must be a positive number, got {load_timeout!r}")
        config.load_timeout = float(load_timeout)

    retrigger = data.get("retrigger", False)
    if not isinstance(retrigger, bool):
        raise RuntimeError(f"'retrigger' must be true or false, got {retrigger!r}")
    config.retrigger = retrigger

    audio = data.get("audio", {}) or {}
    if not isinstance(audio, dict):
        raise RuntimeError("'audio' must be a mapping")
    device = audio.get("device")
    if device is not None and not isinstance(device, str):
        raise RuntimeError(f"audio: 'device' must be a string, got {device!r}")
    config.audio = AudioConfig(
        sample_rate=_require_int("audio", "sample_rate", audio.get("sample_rate", DEFAULT_SAMPLE_RATE)),
        blocksize=_require_int("audio", "blocksize", audio.get("blocksize", DEFAULT_BLOCKSIZE)),
        device=device,
    )

    return config


def load_config(config_path=DEFAULT_CONFIG_PATH) -> InstrumentConfig:
    """Load and validate a YAML configuration file.

    Relative sample paths in the file resolve against the file's directory.

    Raises:
        FileNotFoundError: If config file not found
        RuntimeError: If the file cannot be parsed or fails validation
    """
    config_path = Path(config_path)
    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Config file not found: {config_path}")
    except yaml.YAMLError as e:
        raise RuntimeError(f"Failed to parse config: {e}")

    config = parse_config(data, base_dir=config_path.resolve().parent)
    logger.info(f"Loaded {len(config.families)} families from {config_path}")
    return config
