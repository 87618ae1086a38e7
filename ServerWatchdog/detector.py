"""
detector.py

Works out which edition the server is, by polling every monitor until one
says the server is ready.
"""

import math

from .errors import DetectionTimeout
from .models import Edition
from .monitor import EditionMonitor
from .ticker import Ticker, DETECTION_INTERVAL_SECONDS


def detect_edition(
        monitors: dict[Edition, EditionMonitor],
        ticker: Ticker,
        timeout_seconds: float,
        interval: float = DETECTION_INTERVAL_SECONDS,
    ) -> Edition:
    """
    Poll until the server is ready, and return its edition.

    `monitors` are checked in order each tick, and the first ready one wins. Java
    comes first: it needs RCON to answer too, so a half-booted Java server never
    gets mistaken for anything else.

    Raises DetectionTimeout if nothing is ready within `timeout_seconds`.
    """
    max_ticks = math.ceil(timeout_seconds / interval)
    ticks = 0
    while True:
        for edition, monitor in monitors.items():
            if monitor.is_ready():
                print(f"Detected {edition} edition after {ticks} tick(s).", flush=True)
                return edition
        ticks += 1
        if ticks > max_ticks:
            raise DetectionTimeout(f"No edition came up after {timeout_seconds} seconds.")
        ticker.sleep(interval)
