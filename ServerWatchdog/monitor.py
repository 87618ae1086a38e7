"""
monitor.py

One class per edition, all with the same methods. The detector and the state
machine only ever talk to `EditionMonitor`, so adding a new edition is just
adding a new class to `MONITORS`.
"""

from . import prober
from .config import EnvVars
from .errors import ProbeError
from .models import Edition, ProbeResult

# The watchdog's own ping is one datagram in to the server, and the pong back in to us:
OWN_DATAGRAMS_PER_PING = 2


class EditionMonitor:
    """ What the watchdog needs to know about a server, for one edition. """
    edition: Edition

    def __init__(self, env: EnvVars) -> None:
        self.env = env

    def is_ready(self) -> bool:
        """ True once the server is actually serving, not just bound. """
        raise NotImplementedError

    def probe_ping(self) -> ProbeResult:
        """ One status query. `detail` holds whatever the protocol gave back. """
        raise NotImplementedError

    def is_connected(self) -> bool:
        """ True if anyone (besides us) is connected right now. """
        raise NotImplementedError


class JavaMonitor(EditionMonitor):
    """
    Java edition: Ask RCON how many players there are. If RCON won't answer,
    count established connections on the game port instead.
    """
    edition = Edition.JAVA

    def is_ready(self) -> bool:
        if not prober.check_tcp_listening(self.env.JAVA_PORT, host=self.env.SERVER_HOST):
            return False
        # The port's up. RCON answering means the world's loaded too:
        return self.probe_ping().reachable

    def probe_ping(self) -> ProbeResult:
        try:
            players = prober.query_rcon(self.env.SERVER_HOST, self.env.RCON_PORT, self.env.RCON_PASSWORD)
        except ProbeError as e:
            return ProbeResult(reachable=False, detail=str(e))
        return ProbeResult(reachable=True, detail=players)

    def is_connected(self) -> bool:
        result = self.probe_ping()
        if result.reachable:
            return result.detail > 0
        print(f"RCON unavailable ({result.detail}), counting connections on port {self.env.JAVA_PORT} instead.", flush=True)
        try:
            return prober.count_established(self.env.JAVA_PORT) > 0
        except ProbeError as e:
            print(f"Couldn't count connections either: {e}", flush=True)
            return False


class BedrockMonitor(EditionMonitor):
    """
    Bedrock edition: Trust the player count in the ping when it's above 0.

    Otherwise this is BEST-EFFORT: UDP has no connection state, so we fall back
    on how many datagrams arrived since the last sample. Anything over the
    threshold (after taking out our own ping) counts as someone playing.
    The very first sample can't compare against anything, so it only records
    the counter.
    """
    edition = Edition.BEDROCK

    def __init__(self, env: EnvVars) -> None:
        super().__init__(env)
        self._last_datagrams: int | None = None

    def is_ready(self) -> bool:
        return self.probe_ping().reachable

    def probe_ping(self) -> ProbeResult:
        try:
            response = prober.ping_bedrock(self.env.SERVER_HOST, self.env.BEDROCK_PORT)
        except ProbeError as e:
            return ProbeResult(reachable=False, detail=str(e))
        return ProbeResult(reachable=True, detail=response)

    def is_connected(self) -> bool:
        result = self.probe_ping()
        if result.reachable and result.detail.players_online > 0:
            # Still read the counter, so the next fallback sample has a fresh baseline:
            self._datagrams_since_last_sample()
            return True
        new_datagrams = self._datagrams_since_last_sample()
        if new_datagrams is None:
            return False
        return new_datagrams - OWN_DATAGRAMS_PER_PING > self.env.BEDROCK_ACTIVITY_THRESHOLD

    def _datagrams_since_last_sample(self) -> int | None:
        try:
            current = prober.udp_datagrams_received()
        except ProbeError as e:
            print(f"Couldn't read UDP counters: {e}", flush=True)
            return None
        last, self._last_datagrams = self._last_datagrams, current
        if last is None:
            return None
        return current - last


MONITORS: dict[Edition, type[EditionMonitor]] = {
    Edition.JAVA: JavaMonitor,
    Edition.BEDROCK: BedrockMonitor,
}

def build_monitors(env: EnvVars) -> dict[Edition, EditionMonitor]:
    """ One monitor per edition, in detection priority order (Java first). """
    return {edition: monitor_class(env) for edition, monitor_class in MONITORS.items()}
