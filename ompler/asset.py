"""
Sample assets - asynchronous fetch and decode of one recording.

A SampleAsset owns exactly one decoded buffer. load() starts the fetch +
decode; on success the buffer is published once, `ready` flips to True and
every readiness listener is called with the buffer. Any failure (missing
file, HTTP error, undecodable audio, timeout) is raised as AssetUnavailable.
There is no retry and no cancellation once a load has been issued.

ASSET SOURCES:
- Plain paths and file:// URLs: read and decoded in a worker thread
- http:// and https:// URLs: fetched with a shared httpx.AsyncClient,
  decoded in a worker thread

DECODED FORMAT:
    DecodedSample.data is a 1D float32 array (first channel of multichannel
    files), DecodedSample.sample_rate the file's native rate in Hz.
"""

import asyncio
import io
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional
from urllib.parse import urlparse, unquote

import httpx
import numpy as np
import soundfile as sf

from ompler.errors import AssetUnavailable
from ompler.log import get_logger

logger = get_logger("asset")


@dataclass(frozen=True)
class DecodedSample:
    """A decoded, playable mono buffer.

    Shared read-only by every voice built from it.

    Attributes:
        data (np.ndarray): 1D float32 samples
        sample_rate (int): Native sample rate in Hz
    """
    data: np.ndarray
    sample_rate: int

    @property
    def duration(self) -> float:
        """Length in seconds at native speed."""
        return len(self.data) / self.sample_rate


def decode_audio(raw: bytes, url: str = "<memory>") -> DecodedSample:
    """Decode an encoded audio file (WAV, FLAC, OGG...) into a mono buffer.

    Args:
        raw: Encoded file contents
        url: Source location, for error messages

    Returns:
        DecodedSample with float32 mono data

    Raises:
        AssetUnavailable: If the data cannot be decoded or holds no audio
    """
    try:
        data, sr = sf.read(io.BytesIO(raw), dtype='float32')
    except Exception as e:
        raise AssetUnavailable(url, f"decode failed: {e}") from e

    # Multichannel files keep their first channel
    if data.ndim == 2:
        data = data[:, 0]
    elif data.ndim != 1:
        raise AssetUnavailable(url, f"unexpected audio shape {data.shape}")

    if len(data) == 0:
        raise AssetUnavailable(url, "empty audio file")

    # Read-only: the buffer is shared by every voice of the family
    data = np.ascontiguousarray(data)
    data.setflags(write=False)

    return DecodedSample(data=data, sample_rate=int(sr))


class AssetSource(ABC):
    """Collaborator that turns a URL into a decoded buffer."""

    @abstractmethod
    async def load(self, url: str) -> DecodedSample:
        """Fetch and decode the sample at `url`.

        Raises:
            AssetUnavailable: On any fetch or decode failure
        """

    async def close(self) -> None:
        """Release any held resources."""


class UrlAssetSource(AssetSource):
    """Loads samples from local paths, file:// and http(s):// URLs.

    Uses a long-lived httpx.AsyncClient for HTTP so several families fetching
    from the same host share connections. The client is created on first use.

    Args:
        base_dir: Directory that relative paths resolve against (default: cwd)
        http_timeout: Per-request HTTP timeout in seconds
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(self, base_dir: Optional[Path] = None, http_timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.http_timeout = http_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.http_timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def resolve_path(self, url: str) -> Path:
        """Map a plain path or file:// URL to a filesystem path."""
        parsed = urlparse(url)
        if parsed.scheme == "file":
            return Path(unquote(parsed.path))
        path = Path(url)
        if not path.is_absolute():
            path = self.base_dir / path
        return path

    async def load(self, url: str) -> DecodedSample:
        scheme = urlparse(url).scheme
        if scheme in ("http", "https"):
            raw = await self._fetch_http(url)
        elif scheme in ("", "file") or len(scheme) == 1:
            # Single-letter scheme is a Windows drive letter
            raw = await self._read_file(url)
        else:
            raise AssetUnavailable(url, f"unsupported URL scheme '{scheme}'")

        return await asyncio.to_thread(decode_audio, raw, url)

    async def _read_file(self, url: str) -> bytes:
        path = self.resolve_path(url)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise AssetUnavailable(url, f"cannot read {path}: {e.strerror or e}") from e

    async def _fetch_http(self, url: str) -> bytes:
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AssetUnavailable(url, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise AssetUnavailable(url, f"fetch failed: {e}") from e
        return response.content

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class SampleAsset:
    """One recording and its decoded buffer.

    Lifecycle: created with its URL at family construction, mutated exactly
    once (buffer absent -> present) on successful decode, never destroyed
    while the instrument runs.

    Attributes:
        url (str): Location of the recording
        source (AssetSource): Fetch/decode collaborator
        buffer (DecodedSample or None): Decoded audio once ready
        ready (bool): True once the buffer is published
    """

    def __init__(self, url: str, source: AssetSource):
        self.url = url
        self.source = source
        self.buffer: Optional[DecodedSample] = None
        self.ready = False
        self._load_issued = False
        self._ready_listeners: List[Callable[[DecodedSample], None]] = []

    def add_ready_listener(self, listener: Callable[[DecodedSample], None]) -> None:
        """Register a callback fired once with the decoded buffer."""
        self._ready_listeners.append(listener)

    async def load(self, timeout: Optional[float] = None) -> DecodedSample:
        """Fetch and decode the recording, then notify readiness.

        Args:
            timeout: Seconds before a stalled load counts as failed (None: wait forever)

        Returns:
            The decoded buffer

        Raises:
            AssetUnavailable: On fetch, decode or timeout failure
            RuntimeError: If load() was already called (no retry)
        """
        if self._load_issued:
            raise RuntimeError(f"Asset load already issued: {self.url}")
        self._load_issued = True

        try:
            if timeout is None:
                decoded = await self.source.load(self.url)
            else:
                decoded = await asyncio.wait_for(self.source.load(self.url), timeout)
        except asyncio.TimeoutError as e:
            raise AssetUnavailable(self.url, f"timed out after {timeout}s") from e
        except AssetUnavailable:
            raise
        except Exception as e:
            raise AssetUnavailable(self.url, str(e)) from e

        self.buffer = decoded
        self.ready = True
        logger.info(f"Loaded {self.url} ({decoded.duration:.2f}s at {decoded.sample_rate}Hz)")

        for listener in self._ready_listeners:
            listener(decoded)

        return decoded
