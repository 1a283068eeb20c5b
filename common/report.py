"""Reporting abstractions for the speed-test engine.

Contains:
- Report ABC: Base class for all reports
- ServerReport: Report of the server ranking
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from common.servers import ServerStatus, recommend


class Report(ABC):
    """Abstract base class for reports."""

    @abstractmethod
    def print(self) -> None:
        """Print the report to stdout."""
        pass

    @abstractmethod
    def success(self) -> bool:
        """Return True if the report indicates success."""
        pass


@dataclass
class ServerReport(Report):
    """Report of server reachability, best first."""

    statuses: list[ServerStatus]

    def print(self) -> None:
        """Print one line per server and the recommendation."""
        for status in self.statuses:
            s = status.server
            if status.available:
                assert status.latency_ms is not None
                print(f"{s.name:<12} {s.location:<12} {status.latency_ms:8.0f}ms")
            else:
                print(f"{s.name:<12} {s.location:<12} unavailable")
        best = recommend(self.statuses)
        if best is not None and best.available:
            print(f"Recommended: {best.server.name}")
        else:
            print("Recommended: none (no server responded)")

    def success(self) -> bool:
        """Return True if at least one server responded."""
        return any(s.available for s in self.statuses)
