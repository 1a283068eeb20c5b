"""Common modules for the speed-test engine.

This package contains code shared by the session engine and the CLI:
- protocol: Phase enum, Transport Protocol, defaults, logging configuration
- config: ProbeConfig and configuration faults
- servers: Speed-test server catalogue and ranking
- transport: HTTP transport primitives and transfer errors
- loopback: Simulated in-process transport
- report: Reporting abstractions
"""

from common.config import ConfigError, ProbeConfig, SchedulerFault
from common.protocol import (
    LOG_PROGRESS_INTERVAL,
    MEGABIT,
    TRACE,
    Phase,
    Transport,
)
from common.servers import DEFAULT_SERVER, SERVERS, SpeedTestServer, find_server
from common.transport import HttpTransport, ProbeFailure, TransferError

__all__ = [
    # Protocol
    "Phase",
    "Transport",
    "TRACE",
    "MEGABIT",
    "LOG_PROGRESS_INTERVAL",
    # Config
    "ProbeConfig",
    # Servers
    "SpeedTestServer",
    "SERVERS",
    "DEFAULT_SERVER",
    "find_server",
    # Transport
    "HttpTransport",
    # Exceptions
    "ConfigError",
    "ProbeFailure",
    "SchedulerFault",
    "TransferError",
]
