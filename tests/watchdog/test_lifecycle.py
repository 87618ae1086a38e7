from botocore.exceptions import ClientError
import pytest

from ServerWatchdog.lifecycle import Watchdog, LifecycleState, ExitCode
from ServerWatchdog.models import Edition
from ServerWatchdog.notifier import Notifier

from .utils import (
    make_env,
    FakeTicker,
    FakeMonitor,
    FakePublisher,
    FakeScaler,
    RecordingSnsClient,
)

TOPIC_ARN = "arn:aws:sns:us-west-2:123456789012:test-topic"


class TestWatchdog:
    def setup_method(self, _method):
        # Java is up right away, unless a test says otherwise:
        self.java = FakeMonitor(Edition.JAVA, ready=[True]) # pylint: disable=attribute-defined-outside-init
        self.bedrock = FakeMonitor(Edition.BEDROCK, ready=[False]) # pylint: disable=attribute-defined-outside-init
        self.publisher = FakePublisher() # pylint: disable=attribute-defined-outside-init
        self.scaler = FakeScaler() # pylint: disable=attribute-defined-outside-init
        self.sns_client = RecordingSnsClient() # pylint: disable=attribute-defined-outside-init
        self.ticker = FakeTicker() # pylint: disable=attribute-defined-outside-init

    def make_watchdog(self, **env_changes) -> Watchdog:
        env = make_env(SNSTOPIC=TOPIC_ARN, **env_changes)
        return Watchdog(
            env=env,
            monitors={Edition.JAVA: self.java, Edition.BEDROCK: self.bedrock},
            publisher=self.publisher,
            notifier=Notifier(env, sns_client=self.sns_client),
            scaler=self.scaler,
            ticker=self.ticker,
        )

    def test_starting_state(self):
        """ Nothing happens until start() is called """
        watchdog = self.make_watchdog()
        assert watchdog.state == LifecycleState.DETECTING_EDITION
        assert watchdog.idle_counter == 0
        assert watchdog.exit_code is None
        assert self.publisher.calls == 0
        assert self.sns_client.published == []

    def test_start_publishes_and_notifies(self):
        watchdog = self.make_watchdog()
        watchdog.start()
        assert watchdog.state == LifecycleState.AWAITING_FIRST_CONNECTION
        assert watchdog.edition == Edition.JAVA
        assert watchdog.public_ip == "1.2.3.4"
        assert self.publisher.calls == 1
        assert len(self.sns_client.published) == 1
        message = self.sns_client.published[0]["Message"]
        assert message.startswith("Server is online.")
        assert "Edition: java" in message
        assert "Address: minecraft.example.com (1.2.3.4)" in message

    def test_start_twice_raises(self):
        watchdog = self.make_watchdog()
        watchdog.start()
        with pytest.raises(RuntimeError, match="already started"):
            watchdog.start()

    @pytest.mark.parametrize("startup_min", [1, 3, 10])
    def test_never_connected_shuts_down_after_exactly_startup_min_ticks(self, startup_min):
        self.java.connected = [False]
        watchdog = self.make_watchdog(STARTUPMIN=startup_min)
        watchdog.start()
        for _ in range(startup_min - 1):
            assert watchdog.tick() == LifecycleState.AWAITING_FIRST_CONNECTION
        assert self.scaler.calls == 0
        # The m-th tick is the last one:
        assert watchdog.tick() == LifecycleState.SHUTTING_DOWN
        assert watchdog.exit_code == ExitCode.NEVER_CONNECTED
        assert self.java.connected_calls == startup_min
        assert self.scaler.calls == 1

    @pytest.mark.parametrize("shutdown_min", [1, 2, 5, 20])
    def test_idle_shutdown_after_shutdown_min_false_samples(self, shutdown_min):
        self.java.connected = [True] + [False] * shutdown_min
        watchdog = self.make_watchdog(SHUTDOWNMIN=shutdown_min)
        watchdog.start()
        assert watchdog.tick() == LifecycleState.ACTIVE
        for expected_counter in range(1, shutdown_min):
            assert watchdog.tick() == LifecycleState.ACTIVE
            assert watchdog.idle_counter == expected_counter
        assert self.scaler.calls == 0
        assert watchdog.tick() == LifecycleState.SHUTTING_DOWN
        assert watchdog.exit_code == ExitCode.IDLE_SHUTDOWN
        assert self.scaler.calls == 1

    @pytest.mark.parametrize("shutdown_min", [1, 2, 5, 20])
    def test_connection_resets_idle_counter(self, shutdown_min):
        """ s-1 false, then one true, then s-1 false, does NOT shut down """
        self.java.connected = [True] + [False] * (shutdown_min - 1) + [True] + [False] * (shutdown_min - 1)
        watchdog = self.make_watchdog(SHUTDOWNMIN=shutdown_min)
        watchdog.start()
        for _ in range(len(self.java.connected)):
            assert watchdog.tick() == LifecycleState.ACTIVE
        assert watchdog.idle_counter == shutdown_min - 1
        assert self.scaler.calls == 0

    def test_scenario_java_at_tick_2_client_at_tick_5(self):
        """
        {StartupMin: 10, ShutdownMin: 20}, Java detected on the second detection tick,
        someone connects on the fifth sample, then leaves for good.
        """
        self.java.ready = [False, True]
        self.java.connected = [False] * 4 + [True] + [False] * 20
        watchdog = self.make_watchdog(STARTUPMIN=10, SHUTDOWNMIN=20)

        watchdog.start()
        assert watchdog.edition == Edition.JAVA
        assert self.java.ready_calls == 2
        # One detection interval went by before the second try:
        assert self.ticker.sleeps == [1]

        for _ in range(4):
            assert watchdog.tick() == LifecycleState.AWAITING_FIRST_CONNECTION
        assert watchdog.tick() == LifecycleState.ACTIVE

        for _ in range(19):
            assert watchdog.tick() == LifecycleState.ACTIVE
            assert self.scaler.calls == 0
        assert self.publisher.calls == 1
        assert len(self.sns_client.published) == 1
        assert "online" in self.sns_client.published[0]["Message"]

        assert watchdog.tick() == LifecycleState.SHUTTING_DOWN
        assert watchdog.exit_code == ExitCode.IDLE_SHUTDOWN
        assert self.scaler.calls == 1
        assert self.publisher.calls == 1
        assert self.sns_client.published[1]["Message"].startswith("Shutting down server.")

    def test_notification_failure_does_not_change_transitions(self):
        self.sns_client.error = ClientError(
            {"Error": {"Code": "NotFound", "Message": "Topic does not exist"}},
            "Publish",
        )
        self.java.connected = [True, False]
        watchdog = self.make_watchdog(SHUTDOWNMIN=1)
        watchdog.start()
        assert watchdog.state == LifecycleState.AWAITING_FIRST_CONNECTION
        assert watchdog.tick() == LifecycleState.ACTIVE
        assert watchdog.tick() == LifecycleState.SHUTTING_DOWN
        assert watchdog.exit_code == ExitCode.IDLE_SHUTDOWN
        assert self.scaler.calls == 1
        # Both notifications were tried:
        assert len(self.sns_client.published) == 2

    def test_detection_timeout_aborts(self):
        self.java.ready = [False]
        watchdog = self.make_watchdog(DETECTION_TIMEOUT_MIN=1)
        assert watchdog.run() == ExitCode.DETECTION_TIMEOUT
        assert watchdog.state == LifecycleState.SHUTTING_DOWN
        assert watchdog.edition is None
        # Polled once a second for the whole minute:
        assert self.ticker.sleeps == [1] * 60
        assert self.publisher.calls == 0
        assert self.scaler.calls == 0
        assert self.sns_client.published == []

    def test_address_failure_shuts_down(self):
        self.publisher.fail = True
        watchdog = self.make_watchdog()
        watchdog.start()
        assert watchdog.state == LifecycleState.SHUTTING_DOWN
        assert watchdog.exit_code == ExitCode.API_FAILURE
        assert self.scaler.calls == 1
        # Only the shutdown message, it never came online:
        assert len(self.sns_client.published) == 1
        assert self.sns_client.published[0]["Message"].startswith("Shutting down server.")

    def test_scaler_failure_exits_non_zero(self):
        self.scaler.fail = True
        self.java.connected = [True, False]
        watchdog = self.make_watchdog(SHUTDOWNMIN=1)
        assert watchdog.run() == ExitCode.API_FAILURE
        assert self.scaler.calls == 1

    def test_tick_after_shutdown_raises(self):
        self.java.connected = [False]
        watchdog = self.make_watchdog(STARTUPMIN=1)
        watchdog.start()
        watchdog.tick()
        assert watchdog.finished
        with pytest.raises(RuntimeError, match="Can't sample connectivity"):
            watchdog.tick()

    def test_run_sleeps_full_interval_before_each_tick(self):
        self.java.connected = [False]
        watchdog = self.make_watchdog(STARTUPMIN=3)
        assert watchdog.run() == ExitCode.NEVER_CONNECTED
        assert self.ticker.sleeps == [60, 60, 60]
        assert self.java.connected_calls == 3

    @pytest.mark.parametrize("startup_min", [1, 2, 10])
    def test_run_waits_whole_startup_window(self, startup_min):
        """ Nobody gets turned away before STARTUPMIN minutes have passed """
        self.java.connected = [False]
        watchdog = self.make_watchdog(STARTUPMIN=startup_min)
        assert watchdog.run() == ExitCode.NEVER_CONNECTED
        assert sum(self.ticker.sleeps) >= startup_min * 60
        assert self.java.connected_calls == startup_min

    def test_run_waits_whole_idle_window(self):
        self.java.connected = [True, False]
        watchdog = self.make_watchdog(SHUTDOWNMIN=2)
        assert watchdog.run() == ExitCode.IDLE_SHUTDOWN
        # One connected sample, then two idle ones, each a full interval after the last:
        assert self.ticker.sleeps == [60, 60, 60]

    def test_run_bedrock_idle_shutdown(self):
        self.java.ready = [False]
        self.bedrock.ready = [True]
        self.bedrock.connected = [True, True, False, False]
        watchdog = self.make_watchdog(SHUTDOWNMIN=2)
        assert watchdog.run() == ExitCode.IDLE_SHUTDOWN
        assert watchdog.edition == Edition.BEDROCK
        assert self.bedrock.connected_calls == 4
        assert self.java.connected_calls == 0
        assert "Edition: bedrock" in self.sns_client.published[0]["Message"]
