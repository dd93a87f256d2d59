"""
Logging setup for tools and applications embedding the scanner.

Library modules only create module-level loggers; nothing is configured on import.
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional, Union

_FORMAT = "%(asctime)s %(levelname)-7s %(threadName)s %(name)s: %(message)s"


def configure_logging(level: Union[int, str] = logging.INFO,
                      logfile: Optional[Union[str, Path]] = None) -> logging.Logger:
    """
    Send docscan logs to stderr and, optionally, to a log file as well.
    Calling it again replaces the handlers it installed before.
    """
    root = logging.getLogger("docscan")
    root.setLevel(level)
    for h in list(root.handlers):
        if getattr(h, "_docscan", False):
            root.removeHandler(h)
            h.close()

    fmt = logging.Formatter(_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(fmt)
    console._docscan = True  # type: ignore[attr-defined]
    root.addHandler(console)

    if logfile:
        Path(logfile).parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile, encoding="utf-8")
        fh.setFormatter(fmt)
        fh._docscan = True  # type: ignore[attr-defined]
        root.addHandler(fh)
        root.info("[logging] Writing debug output to: %s", logfile)
    return root
