"""
lifecycle.py

The state machine that decides when the server gets shut down. This is the
ONLY place that holds state, and the only place that decides if an error is
fatal. Everything it calls just reports back.

    DETECTING_EDITION -> AWAITING_FIRST_CONNECTION -> ACTIVE -> SHUTTING_DOWN
                                  |                                 ^
                                  +---------------------------------+
                                     (nobody showed up in time)
"""

from enum import Enum, IntEnum

from .config import EnvVars
from .detector import detect_edition
from .errors import DetectionTimeout, AddressResolutionError, ScalerError
from .models import Edition
from .monitor import EditionMonitor
from .notifier import Notifier
from .publisher import AddressPublisher
from .scaler import Scaler
from .ticker import Ticker, CHECK_INTERVAL_SECONDS


class LifecycleState(Enum):
    DETECTING_EDITION = "DetectingEdition"
    AWAITING_FIRST_CONNECTION = "AwaitingFirstConnection"
    ACTIVE = "Active"
    # Never entered: ACTIVE + idle_counter already says how far into the countdown we are.
    IDLE_COUNTDOWN = "IdleCountdown"
    SHUTTING_DOWN = "ShuttingDown"


class ExitCode(IntEnum):
    """ How the process exits. ECS / the log shipper can tell these apart. """
    IDLE_SHUTDOWN = 0
    CONFIG_ERROR = 1
    DETECTION_TIMEOUT = 2
    NEVER_CONNECTED = 3
    API_FAILURE = 4


class Watchdog:
    """
    Drive it with `run()`, or `start()` then `tick()` one sample at a time.

    Each tick is one connectivity sample, then whatever counter update and
    transition that sample causes. Nothing else happens in a tick.
    """
    def __init__(
            self,
            env: EnvVars,
            monitors: dict[Edition, EditionMonitor],
            publisher: AddressPublisher,
            notifier: Notifier,
            scaler: Scaler,
            ticker: Ticker,
        ) -> None:
        self.env = env
        self.monitors = monitors
        self.publisher = publisher
        self.notifier = notifier
        self.scaler = scaler
        self.ticker = ticker
        self.state = LifecycleState.DETECTING_EDITION
        self.edition: Edition | None = None
        self.public_ip: str | None = None
        self.startup_ticks = 0
        self.idle_counter = 0
        self.exit_code: ExitCode | None = None

    @property
    def finished(self) -> bool:
        return self.state == LifecycleState.SHUTTING_DOWN

    def _transition(self, new_state: LifecycleState) -> None:
        print(f"State: {self.state.value} -> {new_state.value}", flush=True)
        self.state = new_state

    def start(self) -> None:
        """ Detect the edition, then publish the address and say we're online. """
        if self.state != LifecycleState.DETECTING_EDITION:
            raise RuntimeError(f"Watchdog already started (state: {self.state.value}).")
        try:
            self.edition = detect_edition(
                self.monitors,
                self.ticker,
                timeout_seconds=self.env.DETECTION_TIMEOUT_MIN * 60,
            )
        except DetectionTimeout as e:
            # Without an edition there's nothing to monitor. Just abort:
            print(f"ERROR: {e}", flush=True)
            self._transition(LifecycleState.SHUTTING_DOWN)
            self.exit_code = ExitCode.DETECTION_TIMEOUT
            return
        self._transition(LifecycleState.AWAITING_FIRST_CONNECTION)

        try:
            self.public_ip = self.publisher.publish()
        except AddressResolutionError as e:
            # Nobody can find the server, so there's no point keeping it up:
            print(f"ERROR: {e}", flush=True)
            self._shut_down(ExitCode.API_FAILURE)
            return
        self.notifier.notify_startup(self.edition, self.public_ip)

    @property
    def monitor(self) -> EditionMonitor:
        return self.monitors[self.edition]

    def tick(self) -> LifecycleState:
        """ Take ONE connectivity sample and act on it. Returns the new state. """
        if self.state not in (LifecycleState.AWAITING_FIRST_CONNECTION, LifecycleState.ACTIVE):
            raise RuntimeError(f"Can't sample connectivity in state '{self.state.value}'.")
        connected = self.monitor.is_connected()

        if self.state == LifecycleState.AWAITING_FIRST_CONNECTION:
            self.startup_ticks += 1
            print(f"Waiting for first connection ({self.startup_ticks}/{self.env.STARTUPMIN}): connected={connected}", flush=True)
            if connected:
                self.idle_counter = 0
                self._transition(LifecycleState.ACTIVE)
            elif self.startup_ticks >= self.env.STARTUPMIN:
                print(f"Nobody connected within {self.env.STARTUPMIN} minute(s).", flush=True)
                self._shut_down(ExitCode.NEVER_CONNECTED)
            return self.state

        ## ACTIVE:
        self.idle_counter = 0 if connected else self.idle_counter + 1
        print(f"Idle for {self.idle_counter}/{self.env.SHUTDOWNMIN} check(s): connected={connected}", flush=True)
        if self.idle_counter >= self.env.SHUTDOWNMIN:
            self._shut_down(ExitCode.IDLE_SHUTDOWN)
        return self.state

    def _shut_down(self, exit_code: ExitCode) -> None:
        """ Terminal. Notify first, then scale down LAST. """
        self._transition(LifecycleState.SHUTTING_DOWN)
        self.notifier.notify_shutdown()
        try:
            self.scaler.scale_down()
        except ScalerError as e:
            print(f"ERROR: {e}", flush=True)
            exit_code = ExitCode.API_FAILURE
        self.exit_code = exit_code

    def run(self) -> ExitCode:
        """ The whole lifecycle. Blocks until shutdown, and returns the exit code. """
        self.start()
        while not self.finished:
            # Each sample closes out a full interval, so STARTUPMIN/SHUTDOWNMIN
            # samples really are that many minutes. Nothing wakes this up early:
            self.ticker.sleep(CHECK_INTERVAL_SECONDS)
            self.tick()
        print(f"Exiting with {self.exit_code.name} ({self.exit_code.value})", flush=True)
        return self.exit_code
