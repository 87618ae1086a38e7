"""
ticker.py

Every wait in the watchdog goes through a Ticker, so the tests can swap in
one that doesn't actually sleep.
"""

import time

# How often the state machine samples connectivity:
CHECK_INTERVAL_SECONDS = 60
# How often edition detection polls the server while it boots:
DETECTION_INTERVAL_SECONDS = 1


class Ticker:
    """ Sleeps for real. Never woken early. """

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)
