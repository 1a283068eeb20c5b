#!/usr/bin/env python3
"""Network speed test tool."""

import argparse
import logging
import os
import signal
import sys
from dataclasses import replace
from enum import IntEnum
from pathlib import Path
from types import FrameType

from common.config import ProbeConfig, SchedulerFault
from common.loopback import LoopbackTransport
from common.protocol import TRACE, Phase, Transport
from common.report import ServerReport
from common.servers import DEFAULT_SERVER, SERVERS, find_server, rank_servers
from common.transport import HttpTransport
from session.report import SessionReport
from session.result import SessionBusyError, ThroughputSample
from session.scheduler import ProbeScheduler, SessionObserver
from session.share import render_svg, svg_data_url

logger = logging.getLogger(__name__)

# Log progress every PROGRESS_STEP percent
PROGRESS_STEP = 5


class ExitCode(IntEnum):
    """Exit codes for speed test runs."""

    SUCCESS = 0  # Download and upload both measured
    FAULT = 1  # Bad configuration or unexpected error
    NO_DATA = 2  # A throughput phase transferred nothing (or run cancelled)
    BUSY = 3  # A session was already running


class LogObserver(SessionObserver):
    """Log progress in PROGRESS_STEP increments and samples at TRACE."""

    def __init__(self) -> None:
        self._last_step = -1

    def on_progress(self, phase: Phase, percent: float) -> None:
        step = int(percent // PROGRESS_STEP)
        if step > self._last_step:
            self._last_step = step
            logger.info(f"Progress: {percent:5.1f}% ({phase.value})")

    def on_sample(self, phase: Phase, sample: ThroughputSample) -> None:
        logger.log(TRACE, f"{phase.value}: {sample.mbps:.2f} Mbps @ {sample.elapsed_ms:.0f}ms")


def build_config(args: argparse.Namespace) -> ProbeConfig:
    """Overlay CLI options on SPEEDTEST_* environment defaults."""
    overrides = {
        "concurrent_streams": getattr(args, "streams", None),
        "download_bytes_per_stream": getattr(args, "download_bytes", None),
        "upload_chunk_bytes": getattr(args, "upload_chunk_bytes", None),
        "tick_interval_ms": getattr(args, "tick_ms", None),
        "min_upload_duration_ms": getattr(args, "min_upload_ms", None),
        "min_upload_bytes": getattr(args, "min_upload_bytes", None),
        "latency_sample_count": getattr(args, "latency_samples", None),
        "latency_delay_ms": getattr(args, "latency_delay_ms", None),
    }
    base = ProbeConfig.from_env()
    return replace(base, **{k: v for k, v in overrides.items() if v is not None})


def run_test(transport: Transport, args: argparse.Namespace, server_name: str) -> int:
    """Run one session and report it. Returns an ExitCode."""
    try:
        config = build_config(args)
    except SchedulerFault as e:
        logger.error(f"Configuration error: {e}")
        return ExitCode.FAULT

    scheduler = ProbeScheduler(transport, LogObserver())

    def handler(_sig: int, _frame: FrameType | None) -> None:
        scheduler.cancel()

    signal.signal(signal.SIGINT, handler)

    try:
        result = scheduler.run_session(config)
    except SessionBusyError as e:
        logger.error(f"{e}")
        return ExitCode.BUSY
    except SchedulerFault as e:
        logger.error(f"Configuration error: {e}")
        return ExitCode.FAULT
    except Exception as e:
        logger.error(f"Error: {e}")
        return ExitCode.FAULT

    svg = render_svg(result, isp=args.isp, server=server_name)
    share_url = svg_data_url(svg) if args.share_data_url else None

    report = SessionReport(result=result)
    if args.json:
        print(report.to_json(share_url=share_url))
    else:
        report.print()
        if share_url:
            print(f"Share: {share_url}")

    if args.share_svg:
        path = Path(args.share_svg)
        path.write_text(svg, encoding="utf-8")
        logger.info(f"Wrote result card to {path}")

    return ExitCode.SUCCESS if report.success() else ExitCode.NO_DATA


def run_servers(timeout_s: float) -> int:
    """Rank the known servers and print them."""
    report = ServerReport(statuses=rank_servers(SERVERS, timeout_s=timeout_s))
    report.print()
    return ExitCode.SUCCESS if report.success() else ExitCode.NO_DATA


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add session and output arguments to a parser.

    Unset session options fall back to SPEEDTEST_* environment variables,
    then to built-in defaults.
    """
    parser.add_argument(
        "-n", "--streams", type=int, help="Concurrent streams per phase (default: 4)"
    )
    parser.add_argument(
        "--download-bytes", type=int, help="Bytes per download stream (default: 25000000)"
    )
    parser.add_argument(
        "--upload-chunk-bytes", type=int, help="Upload chunk size in bytes (default: 1048576)"
    )
    parser.add_argument(
        "--min-upload-ms", type=int, help="Minimum upload phase duration in ms (default: 3000)"
    )
    parser.add_argument(
        "--min-upload-bytes", type=int, help="Minimum bytes uploaded (default: 5242880)"
    )
    parser.add_argument(
        "--latency-samples", type=int, help="Number of latency probes (default: 10)"
    )
    parser.add_argument(
        "--latency-delay-ms", type=int, help="Delay between latency probes in ms (default: 50)"
    )
    parser.add_argument("--tick-ms", type=int, help="Download sampling interval in ms (default: 60)")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--share-svg", type=str, help="Write a shareable SVG result card to this path")
    parser.add_argument(
        "--share-data-url", action="store_true", help="Print the result card as a data: URL"
    )
    parser.add_argument("--isp", type=str, default="Unknown", help="ISP name shown on the result card")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Measure latency, jitter, packet loss and download/upload throughput",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                             Run against Cloudflare
  %(prog)s -s hetzner -n 8             Run against Hetzner with 8 streams
  %(prog)s servers                     Rank servers by latency
  %(prog)s loopback --rate 100         Run against a simulated 100 Mbps/stream link
  %(prog)s loopback --link-latency-ms 5 Simulated link with 5ms base latency
""",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="-v for DEBUG, -vv for TRACE"
    )

    subparsers = parser.add_subparsers(dest="mode")

    # Loopback subcommand
    loopback_parser = subparsers.add_parser(
        "loopback", help="Run against a simulated in-process link"
    )
    loopback_parser.add_argument(
        "--rate", type=float, default=50.0, help="Download rate per stream in Mbps (default: 50)"
    )
    loopback_parser.add_argument(
        "--upload-rate", type=float, help="Upload rate per stream in Mbps (default: --rate)"
    )
    loopback_parser.add_argument(
        "--link-latency-ms", type=float, default=20.0, help="Base link latency in ms (default: 20)"
    )
    loopback_parser.add_argument(
        "--link-jitter-ms", type=float, default=2.0, help="Link latency jitter in ms (default: 2)"
    )
    loopback_parser.add_argument(
        "--loss", type=float, default=0.0, help="Probe loss ratio 0..1 (default: 0)"
    )
    _add_common_args(loopback_parser)

    # Servers subcommand
    servers_parser = subparsers.add_parser("servers", help="Rank known servers by latency")
    servers_parser.add_argument(
        "--timeout", type=float, default=3.0, help="Per-server timeout in seconds (default: 3)"
    )

    # Network mode args (top-level)
    parser.add_argument(
        "-s",
        "--server",
        type=str,
        choices=[s.name.lower() for s in SERVERS],
        default=os.environ.get("SPEEDTEST_SERVER", DEFAULT_SERVER.name).lower(),
        help=f"Speed-test server (default: {DEFAULT_SERVER.name.lower()})",
    )
    _add_common_args(parser)
    return parser


def main() -> int:
    args = build_parser().parse_args()

    level = logging.INFO if args.verbose == 0 else logging.DEBUG if args.verbose == 1 else TRACE
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s")

    if args.mode == "servers":
        return run_servers(args.timeout)

    if args.mode == "loopback":
        try:
            loopback = LoopbackTransport(
                stream_rate_mbps=args.rate,
                latency_ms=args.link_latency_ms,
                jitter_ms=args.link_jitter_ms,
                probe_loss=args.loss,
                upload_rate_mbps=args.upload_rate,
            )
        except ValueError as e:
            logger.error(f"Invalid loopback link: {e}")
            return ExitCode.FAULT
        return run_test(loopback, args, "Loopback")

    try:
        server = find_server(args.server)
    except KeyError as e:
        logger.error(e.args[0])
        return ExitCode.FAULT
    logger.info(f"Server: {server.name} ({server.location})")
    with HttpTransport(server) as transport:
        return run_test(transport, args, server.name)


if __name__ == "__main__":
    sys.exit(main())
