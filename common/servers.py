"""Speed-test server catalogue for the speed-test engine.

Contains:
- SpeedTestServer: Endpoints of one speed-test server
- SERVERS: Known public servers
- find_server: Look up a server by name
- rank_servers: Ping each server and sort by latency
"""

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)

RANK_TIMEOUT_S = 3.0

# Upload sink used by servers that only serve downloads
DEFAULT_UPLOAD_URL = "https://speed.cloudflare.com/__up"


@dataclass(frozen=True)
class SpeedTestServer:
    """Endpoints of one speed-test server.

    download_url either contains a "{bytes}" placeholder (server generates a
    payload of the requested size) or names a fixed test file that is read with
    an HTTP Range request. Servers without an upload_url upload to
    DEFAULT_UPLOAD_URL.
    """

    name: str
    location: str
    download_url: str
    ping_url: str
    upload_url: str | None = None

    @property
    def sized_download(self) -> bool:
        return "{bytes}" in self.download_url

    @property
    def upload_endpoint(self) -> str:
        return self.upload_url or DEFAULT_UPLOAD_URL


SERVERS: tuple[SpeedTestServer, ...] = (
    SpeedTestServer(
        name="Cloudflare",
        location="Global CDN",
        download_url="https://speed.cloudflare.com/__down?bytes={bytes}",
        ping_url="https://speed.cloudflare.com/__down?bytes=0",
        upload_url=DEFAULT_UPLOAD_URL,
    ),
    SpeedTestServer(
        name="Hetzner",
        location="Germany",
        download_url="https://speed.hetzner.de/100MB.bin",
        ping_url="https://speed.hetzner.de/",
    ),
    SpeedTestServer(
        name="OVH",
        location="France",
        download_url="http://proof.ovh.net/files/100Mb.dat",
        ping_url="http://proof.ovh.net/",
    ),
)

DEFAULT_SERVER = SERVERS[0]


def find_server(name: str) -> SpeedTestServer:
    """Return the server whose name matches (case-insensitive).

    Raises:
        KeyError: If no server has that name.
    """
    for server in SERVERS:
        if server.name.lower() == name.lower():
            return server
    raise KeyError(f"Unknown server {name!r} (known: {', '.join(s.name for s in SERVERS)})")


@dataclass(frozen=True)
class ServerStatus:
    """Reachability of one server."""

    server: SpeedTestServer
    latency_ms: float | None

    @property
    def available(self) -> bool:
        return self.latency_ms is not None


def _head_latency(server: SpeedTestServer, session: requests.Session, timeout_s: float) -> float | None:
    start = time.perf_counter()
    try:
        session.head(server.ping_url, timeout=timeout_s, allow_redirects=True)
    except requests.RequestException as e:
        logger.debug(f"Server {server.name} unreachable: {e}")
        return None
    return (time.perf_counter() - start) * 1000


def rank_servers(
    servers: Sequence[SpeedTestServer] = SERVERS,
    timeout_s: float = RANK_TIMEOUT_S,
    session_factory: Callable[[], requests.Session] = requests.Session,
) -> list[ServerStatus]:
    """Ping each server once and return them ordered best first.

    Available servers come first, sorted by latency; unreachable servers
    follow in catalogue order.
    """
    with session_factory() as session:
        statuses = [
            ServerStatus(server=s, latency_ms=_head_latency(s, session, timeout_s))
            for s in servers
        ]
    available = sorted((s for s in statuses if s.available), key=lambda s: s.latency_ms or 0.0)
    unavailable = [s for s in statuses if not s.available]
    return available + unavailable


def recommend(statuses: Sequence[ServerStatus]) -> ServerStatus | None:
    """Return the first available server, or the first entry if none respond."""
    for status in statuses:
        if status.available:
            return status
    return statuses[0] if statuses else None
