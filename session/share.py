"""Shareable result card for the speed-test engine.

Renders a session result as a standalone 600x300 SVG image.
"""

import base64
from datetime import datetime, timezone
from xml.sax.saxutils import escape

from session.result import SessionResult

GENERATOR = "speed-testkit"

_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<svg width="600" height="300" xmlns="http://www.w3.org/2000/svg">
  <defs>
    <linearGradient id="bg" x1="0%" y1="0%" x2="100%" y2="100%">
      <stop offset="0%" style="stop-color:#0f172a"/>
      <stop offset="100%" style="stop-color:#1e3a5f"/>
    </linearGradient>
  </defs>
  <rect width="600" height="300" fill="url(#bg)"/>
  <text x="300" y="40" text-anchor="middle" fill="#06b6d4" font-family="Arial" font-size="24" font-weight="bold">Network Speed Test</text>
{tiles}
  <text x="30" y="195" fill="#64748b" font-family="Arial" font-size="12">ISP: <tspan fill="#94a3b8">{isp}</tspan></text>
  <text x="30" y="215" fill="#64748b" font-family="Arial" font-size="12">Server: <tspan fill="#94a3b8">{server}</tspan></text>
  <text x="30" y="235" fill="#64748b" font-family="Arial" font-size="12">Date: <tspan fill="#94a3b8">{date}</tspan></text>
  <text x="300" y="280" text-anchor="middle" fill="#475569" font-family="Arial" font-size="10">{generator}</text>
</svg>
"""

_TILE = """  <rect x="{x}" y="70" width="160" height="80" rx="10" fill="#1e293b"/>
  <text x="{cx}" y="100" text-anchor="middle" fill="#94a3b8" font-family="Arial" font-size="12">{label}</text>
  <text x="{cx}" y="135" text-anchor="middle" fill="{color}" font-family="Arial" font-size="28" font-weight="bold">{value}</text>
  <text x="{cx}" y="150" text-anchor="middle" fill="#64748b" font-family="Arial" font-size="10">{unit}</text>"""


def _tile(x: int, label: str, value: float | None, unit: str, color: str) -> str:
    text = "--" if value is None else f"{value:.2f}"
    return _TILE.format(x=x, cx=x + 80, label=label, value=text, unit=unit, color=color)


def render_svg(
    result: SessionResult,
    isp: str = "Unknown",
    server: str = "Cloudflare",
    timestamp: datetime | None = None,
) -> str:
    """Return the result card as SVG markup."""
    when = timestamp or datetime.fromtimestamp(result.started_at or 0, tz=timezone.utc)
    tiles = "\n".join(
        [
            _tile(30, "DOWNLOAD", result.download_mbps, "Mbps", "#06b6d4"),
            _tile(220, "UPLOAD", result.upload_mbps, "Mbps", "#a855f7"),
            _tile(410, "PING", result.latency_ms, "ms", "#22c55e"),
        ]
    )
    return _TEMPLATE.format(
        tiles=tiles,
        isp=escape(isp),
        server=escape(server),
        date=when.strftime("%Y-%m-%d %H:%M:%S %Z").strip(),
        generator=GENERATOR,
    )


def svg_data_url(svg: str) -> str:
    """Encode SVG markup as a base64 data URL."""
    encoded = base64.b64encode(svg.encode("utf-8")).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"
