from __future__ import annotations

import logging
import sys
from typing import TextIO

import click

LogLevels = [
    "error",
    "warn",
    "info",
    "debug",
]

LOG_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

LOG_COLORS = {logging.ERROR: "red", logging.WARNING: "yellow"}


class ProtochainFormatter(logging.Formatter):
    def __init__(self, colorize: bool):
        super().__init__()
        self.colorize = colorize
        time = "[%s]"
        hop = "[%s]"
        if colorize:
            time = click.style(time, fg="cyan", dim=True)
            hop = click.style(hop, fg="yellow", dim=True)

        self.with_hop = f"{time}{hop} %s"
        self.without_hop = f"{time} %s"

    default_time_format = "%H:%M:%S"
    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:
        time = self.formatTime(record)
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if self.colorize:
            message = click.style(message, fg=LOG_COLORS.get(record.levelno))
        if hop := getattr(record, "hop", None):
            return self.with_hop % (time, hop, message)
        else:
            return self.without_hop % (time, message)


class ProtochainLogHandler(logging.StreamHandler):
    def install(self) -> None:
        for h in list(logging.getLogger().handlers):
            if isinstance(h, ProtochainLogHandler):
                h.uninstall()
        logging.getLogger().addHandler(self)

    def uninstall(self) -> None:
        logging.getLogger().removeHandler(self)


def setup_logging(verbosity: str = "info", stream: TextIO | None = None) -> ProtochainLogHandler:
    """
    Route all log output through a single ProtochainLogHandler at the given verbosity.
    """
    if verbosity not in LOG_LEVELS:
        raise ValueError(f"Invalid log verbosity: {verbosity}")
    stream = stream or sys.stderr
    logging.getLogger().setLevel(LOG_LEVELS[verbosity])
    for noisy in ("asyncio", "hpack", "h2"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    handler = ProtochainLogHandler(stream)
    handler.setFormatter(ProtochainFormatter(colorize=stream.isatty()))
    handler.install()
    return handler
