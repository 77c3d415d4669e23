"""gacodegen logging.

Everything logs under the ``gacodegen`` hierarchy through :func:`get_logger`.

Environment variables:
    GACODEGEN_LOG_LEVEL  DEBUG / INFO (default) / WARNING / ERROR
    GACODEGEN_LOG_FILE   optional path; appends plain-text log lines
"""

import logging
import os
import sys

_CONFIGURED = False

_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
_RESET = "\033[0m"


class _ColorFormatter(logging.Formatter):
    """Adds ANSI colour to level names when writing to a TTY."""

    def __init__(self, fmt: str, use_color: bool = True):
        super().__init__(fmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if self.use_color:
            color = _COLORS.get(record.levelno, "")
            record.levelname = f"{color}{record.levelname}{_RESET}"
        return super().format(record)


def _configure_once() -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return
    _CONFIGURED = True

    root = logging.getLogger("gacodegen")
    level_name = os.environ.get("GACODEGEN_LOG_LEVEL", "INFO").upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # stderr, so the printed Cayley table on stdout stays clean
    fmt = "%(levelname)s %(name)s: %(message)s"
    use_color = hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(_ColorFormatter(fmt, use_color=use_color))
    root.addHandler(console)

    log_file = os.environ.get("GACODEGEN_LOG_FILE")
    if log_file:
        fh = logging.FileHandler(log_file, mode="a")
        fh.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"
        ))
        root.addHandler(fh)


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``gacodegen`` hierarchy.

    Args:
        name: Typically ``__name__`` of the calling module.
    """
    _configure_once()
    if name.startswith("gacodegen."):
        name = name[len("gacodegen."):]
    return logging.getLogger(f"gacodegen.{name}")
