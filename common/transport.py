"""HTTP transport primitives for the speed-test engine.

Contains:
- TransferError: Raised when a download or upload exchange fails
- ProbeFailure: Raised when a latency probe fails
- HttpTransport: probe / sized download / upload chunk over requests
"""

import logging
import threading
import time
from collections.abc import Callable, Iterator

import requests

from common.protocol import TRACE
from common.servers import SpeedTestServer

logger = logging.getLogger(__name__)

USER_AGENT = "speed-testkit/1.0"

# (connect, read) timeouts in seconds
CONNECT_TIMEOUT_S = 10.0
READ_TIMEOUT_S = 30.0

DEFAULT_READ_CHUNK_BYTES = 64 * 1024

# Defeat intermediate caches so every probe and download hits the server
_NO_CACHE_HEADERS = {
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
}


class TransferError(Exception):
    """Raised when a download or upload exchange fails."""

    pass


class ProbeFailure(Exception):
    """Raised when a latency probe round trip fails."""

    pass


class HttpTransport:
    """Transport primitives against one speed-test server.

    Each calling thread gets its own requests.Session so that keep-alive
    connections are reused per stream without sharing a session across threads.
    """

    def __init__(
        self,
        server: SpeedTestServer,
        connect_timeout_s: float = CONNECT_TIMEOUT_S,
        read_timeout_s: float = READ_TIMEOUT_S,
        read_chunk_bytes: int = DEFAULT_READ_CHUNK_BYTES,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.server = server
        self._timeout = (connect_timeout_s, read_timeout_s)
        self._read_chunk_bytes = read_chunk_bytes
        self._session_factory = session_factory
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._lock = threading.Lock()

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            session.headers.update({"User-Agent": USER_AGENT})
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def close(self) -> None:
        """Close every per-thread session opened so far."""
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()

    def probe(self) -> float:
        """Perform a minimal round trip. Returns elapsed milliseconds.

        Raises:
            ProbeFailure: On connection error, timeout or non-2xx status.
        """
        start = time.perf_counter()
        try:
            with self._session().get(
                self.server.ping_url,
                headers=_NO_CACHE_HEADERS,
                stream=True,
                timeout=self._timeout,
            ) as resp:
                resp.raise_for_status()
        except requests.RequestException as e:
            raise ProbeFailure(f"Probe to {self.server.name} failed: {e}") from e
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.log(TRACE, f"Probe {self.server.name}: {elapsed_ms:.2f}ms")
        return elapsed_ms

    def _download_request(self, byte_count: int) -> tuple[str, dict[str, str]]:
        headers = dict(_NO_CACHE_HEADERS)
        if self.server.sized_download:
            return self.server.download_url.format(bytes=byte_count), headers
        # Fixed test file: ask for the leading byte_count bytes
        headers["Range"] = f"bytes=0-{byte_count - 1}"
        return self.server.download_url, headers

    def open_download(self, byte_count: int) -> Iterator[bytes]:
        """Stream up to byte_count bytes from the server.

        Yields chunks as they arrive; never yields more than byte_count bytes
        in total, even if the server ignores the Range header.

        Raises:
            TransferError: On connection error, timeout or non-2xx status,
                including failures mid-stream.
        """
        url, headers = self._download_request(byte_count)
        remaining = byte_count
        try:
            with self._session().get(
                url, headers=headers, stream=True, timeout=self._timeout
            ) as resp:
                resp.raise_for_status()
                for chunk in resp.iter_content(chunk_size=self._read_chunk_bytes):
                    if not chunk:
                        continue
                    if len(chunk) >= remaining:
                        yield chunk[:remaining]
                        return
                    remaining -= len(chunk)
                    yield chunk
        except requests.RequestException as e:
            raise TransferError(f"Download from {self.server.name} failed: {e}") from e

    def send_upload_chunk(self, payload: bytes) -> None:
        """POST one payload and wait for the complete response.

        Download-only servers upload to the shared default endpoint.

        Raises:
            TransferError: On connection error, timeout or non-2xx status.
        """
        try:
            resp = self._session().post(
                self.server.upload_endpoint,
                data=payload,
                headers={"Content-Type": "application/octet-stream"},
                timeout=self._timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise TransferError(f"Upload to {self.server.name} failed: {e}") from e
