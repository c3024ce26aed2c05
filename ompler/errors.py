"""Error taxonomy for the ompler instrument.

Only failures that cross a component boundary get an exception type here.
Misrouted messages (a voice receiving another pitch's message) and unmapped
pitches (no voice owns the pitch) are expected steady-state conditions and
are handled locally without raising.
"""


class OmplerError(Exception):
    """Base class for ompler errors."""


class AssetUnavailable(OmplerError):
    """A sample could not be fetched or decoded.

    Fatal to the owning family only: its pitch range stays unplayable for the
    lifetime of the process. No retry is attempted.

    Attributes:
        url (str): Location of the sample that failed
        reason (str): Human-readable cause
    """

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Sample unavailable: {url} ({reason})")


class UnsupportedEnvironment(OmplerError):
    """The host cannot provide audio playback at all.

    Fatal at the instrument level: reported once, the instrument does not start.
    """
