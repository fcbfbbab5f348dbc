"""Human-readable progress lines for one import, separate from structured logs.

The sink is handed explicitly to every collaborator call, so concurrent
imports never share one.
"""

import logging


class ConsoleOutput:
    """Print progress lines; used by the CLI."""

    def writeln(self, message: str) -> None:
        print(message)


class LoggerOutput:
    """Send progress lines to a logger; used for webhook-triggered imports."""

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.INFO):
        self.logger = logger or logging.getLogger("stravaimport.import")
        self.level = level

    def writeln(self, message: str) -> None:
        self.logger.log(self.level, message)


class BufferedOutput:
    """Collect progress lines in memory."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def writeln(self, message: str) -> None:
        self.lines.append(message)

    def __str__(self) -> str:
        return "\n".join(self.lines)
