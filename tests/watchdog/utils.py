from dataclasses import replace

from ServerWatchdog.config import EnvVars, load_env_vars
from ServerWatchdog.errors import AddressResolutionError, ScalerError
from ServerWatchdog.models import Edition, ProbeResult

DEFAULT_ENV_VARS = {
    "CLUSTER": "test-cluster",
    "SERVICE": "test-service",
    "SERVERNAME": "minecraft.example.com",
    "DNSZONE": "Z_DUMMY_12345",  # Dummy value
    "ECS_CONTAINER_METADATA_URI_V4": "http://169.254.170.2/v4/test-container",
}

def make_env(**changes) -> EnvVars:
    """ A valid config, with `changes` applied on top """
    return replace(load_env_vars(DEFAULT_ENV_VARS), **changes)


class FakeTicker:
    """ Records every sleep instead of actually sleeping """
    def __init__(self):
        self.sleeps = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


class FakeMonitor:
    """
    Replays canned answers. Once a list runs out, the last answer repeats.
    """
    def __init__(self, edition: Edition, ready=(False,), connected=(False,)):
        self.edition = edition
        self.ready = list(ready)
        self.connected = list(connected)
        self.ready_calls = 0
        self.connected_calls = 0

    @staticmethod
    def _next(answers: list, index: int) -> bool:
        return answers[min(index, len(answers) - 1)]

    def is_ready(self) -> bool:
        answer = self._next(self.ready, self.ready_calls)
        self.ready_calls += 1
        return answer

    def probe_ping(self) -> ProbeResult:
        return ProbeResult(reachable=self._next(self.ready, self.ready_calls))

    def is_connected(self) -> bool:
        answer = self._next(self.connected, self.connected_calls)
        self.connected_calls += 1
        return answer


class FakePublisher:
    def __init__(self, public_ip: str = "1.2.3.4", fail: bool = False):
        self.public_ip = public_ip
        self.fail = fail
        self.calls = 0

    def publish(self) -> str:
        self.calls += 1
        if self.fail:
            raise AddressResolutionError("No ENI found")
        return self.public_ip


class FakeScaler:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = 0

    def scale_down(self) -> None:
        self.calls += 1
        if self.fail:
            raise ScalerError("ECS said no")


class RecordingSnsClient:
    """ Stand-in for the boto3 SNS client. Keeps every publish. """
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.published = []

    def publish(self, **kwargs):
        self.published.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"MessageId": f"message-{len(self.published)}"}
