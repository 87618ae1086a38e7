"""
notifier.py

Startup/Shutdown messages over SNS. Best-effort: A failed publish gets logged
and that's it. It never stops the server from starting (or shutting down).
"""

from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Callable

from botocore.exceptions import BotoCoreError, ClientError

from .config import EnvVars
from .errors import NotificationError
from .models import Edition


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Notifier:
    """ Does nothing if SNSTOPIC isn't configured """
    def __init__(self, env: EnvVars, sns_client=None, clock: Callable[[], datetime] = _utc_now) -> None:
        self.env = env
        self.sns_client = sns_client
        self.clock = clock

    @property
    def enabled(self) -> bool:
        return bool(self.env.SNSTOPIC) and self.sns_client is not None

    def _timestamp(self) -> str:
        # Same format as an HTTP date: "Mon, 19 Oct 2026 01:42:00 GMT"
        return format_datetime(self.clock(), usegmt=True)

    def startup_message(self, edition: Edition, public_ip: str) -> str:
        return "\n".join([
            "Server is online.",
            f"Service: {self.env.SERVICE}",
            f"Edition: {edition}",
            f"Address: {self.env.SERVERNAME} ({public_ip})",
            f"Cluster: {self.env.CLUSTER}",
            f"Time: {self._timestamp()}",
        ])

    def shutdown_message(self) -> str:
        return "\n".join([
            "Shutting down server.",
            f"Service: {self.env.SERVICE}",
            f"Address: {self.env.SERVERNAME}",
            f"Cluster: {self.env.CLUSTER}",
            f"Time: {self._timestamp()}",
        ])

    def send(self, subject: str, message: str) -> None:
        """ Publish to the topic. Raises NotificationError if SNS fails. """
        try:
            # https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/sns/client/publish.html
            self.sns_client.publish(
                TopicArn=self.env.SNSTOPIC,
                # SNS caps subjects at 100 characters:
                Subject=subject[:100],
                Message=message,
            )
        except (BotoCoreError, ClientError) as e:
            raise NotificationError(f"Failed to publish to '{self.env.SNSTOPIC}': {e}") from e

    def _deliver(self, subject: str, message: str) -> bool:
        print(message, flush=True)
        if not self.enabled:
            return False
        try:
            self.send(subject, message)
        except NotificationError as e:
            print(f"WARNING: {e}", flush=True)
            return False
        return True

    def notify_startup(self, edition: Edition, public_ip: str) -> bool:
        """ Returns if the message was actually delivered """
        return self._deliver(f"{self.env.SERVERNAME} is online", self.startup_message(edition, public_ip))

    def notify_shutdown(self) -> bool:
        """ Returns if the message was actually delivered """
        return self._deliver(f"{self.env.SERVERNAME} is shutting down", self.shutdown_message())
