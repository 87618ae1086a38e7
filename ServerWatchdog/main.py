"""
Entry point for the watchdog container.

Runs for the whole life of the task, and exits with one of
`lifecycle.ExitCode` once the server's been shut down.
"""

import sys
import json
from functools import cache
from dataclasses import asdict

import boto3
from botocore.config import Config
from schema import SchemaError

from .config import get_env_vars
from .lifecycle import Watchdog, ExitCode
from .monitor import build_monitors
from .notifier import Notifier
from .publisher import AddressPublisher
from .scaler import Scaler
from .ticker import Ticker

# Notifications are best-effort. A hung publish can't be allowed to hold up scaling down:
SNS_CLIENT_CONFIG = Config(
    connect_timeout=5,
    read_timeout=10,
    retries={"max_attempts": 2, "mode": "standard"},
)

## Boto3 Clients:
# ALWAYS use @cache for clients. It keeps them from existing until
# moto is setup inside of the test suite.
@cache
def get_ecs_client():
    """ Used for finding the task's ENI, and scaling the service down """
    return boto3.client('ecs')

@cache
def get_ec2_client():
    """ Used for getting the ENI's public IP """
    return boto3.client('ec2')

@cache
def get_route53_client():
    """ Used for updating the DNS record """
    return boto3.client('route53')

@cache
def get_sns_client():
    """ Used for startup/shutdown notifications """
    return boto3.client('sns', config=SNS_CLIENT_CONFIG)


def build_watchdog() -> Watchdog:
    """ Wire every component together from the env vars """
    env = get_env_vars()
    # Don't leak the RCON password into the logs:
    print(json.dumps({"Env": asdict(env) | {"RCON_PASSWORD": "****"}}, default=str), flush=True)
    ticker = Ticker()
    return Watchdog(
        env=env,
        monitors=build_monitors(env),
        publisher=AddressPublisher(
            env,
            ecs_client=get_ecs_client(),
            ec2_client=get_ec2_client(),
            route53_client=get_route53_client(),
            ticker=ticker,
        ),
        notifier=Notifier(env, sns_client=get_sns_client() if env.SNSTOPIC else None),
        scaler=Scaler(env, ecs_client=get_ecs_client(), ticker=ticker),
        ticker=ticker,
    )

def main() -> int:
    """ Main function of the watchdog. """
    try:
        watchdog = build_watchdog()
    except SchemaError as e:
        print(f"ERROR: Invalid config: {e}", flush=True)
        return ExitCode.CONFIG_ERROR
    return watchdog.run()


if __name__ == "__main__":
    sys.exit(main())
