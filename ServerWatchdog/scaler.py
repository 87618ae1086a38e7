"""
scaler.py

Sets the ECS service's desired count to 0. ECS then stops the task, which
includes the watchdog itself, so this is always the last thing it does.
"""

from botocore.exceptions import BotoCoreError, ClientError

from .config import EnvVars
from .errors import ScalerError
from .ticker import Ticker


class Scaler:
    """ Idempotent: Calling scale_down again after it worked does nothing. """
    def __init__(
            self,
            env: EnvVars,
            ecs_client,
            ticker: Ticker,
            retries: int = 3,
            backoff: float = 2.0,
        ) -> None:
        self.env = env
        self.ecs_client = ecs_client
        self.ticker = ticker
        self.retries = retries
        self.backoff = backoff
        self.scaled_down = False

    def desired_count(self) -> int:
        # https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/ecs/client/describe_services.html
        service = self.ecs_client.describe_services(
            cluster=self.env.CLUSTER,
            services=[self.env.SERVICE],
        )["services"][0]
        return service["desiredCount"]

    def scale_down(self) -> None:
        """
        Set the desired count to 0, retrying with exponential backoff.

        Raises ScalerError once every retry is used up. ECS will reconcile
        eventually, we just can't hang around waiting for it.
        """
        if self.scaled_down:
            print("Service already scaled down, nothing to do.", flush=True)
            return
        last_error = None
        for attempt in range(1, self.retries + 1):
            try:
                if self.desired_count() == 0:
                    print(f"Service '{self.env.SERVICE}' is already at desiredCount 0.", flush=True)
                else:
                    # https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/ecs/client/update_service.html
                    self.ecs_client.update_service(
                        cluster=self.env.CLUSTER,
                        service=self.env.SERVICE,
                        desiredCount=0,
                    )
                    print(f"Updated '{self.env.SERVICE}' to desiredCount 0.", flush=True)
                self.scaled_down = True
                return
            # A missing service comes back as an empty list, not an error:
            except (BotoCoreError, ClientError, KeyError, IndexError) as e:
                last_error = e
                print(f"Attempt {attempt}/{self.retries} to scale down failed: {e!r}", flush=True)
            if attempt < self.retries:
                self.ticker.sleep(self.backoff * 2 ** (attempt - 1))
        raise ScalerError(f"Couldn't scale '{self.env.SERVICE}' down after {self.retries} attempts.") from last_error
