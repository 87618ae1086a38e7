"""
config.py

Loads the watchdog's env vars ONCE, validates them, and hands back a frozen
dataclass. Everything else gets the config passed in, nothing else reads os.environ.

The docs for schema is at: https://github.com/keleshev/schema
"""

import os
from functools import cache
from dataclasses import dataclass, fields
from typing import Mapping

from schema import Schema, And, Use, Optional

MAX_DNS_TTL = 60


def _non_empty(key: str) -> And:
    return And(str, Use(str.strip), len, error=f"'{key}' is required, and can't be empty.")

def _positive_int(key: str) -> And:
    return And(Use(int), lambda n: n > 0, error=f"'{key}' must be a positive integer.")

def _port(key: str) -> And:
    return And(Use(int), lambda n: 0 < n < 65536, error=f"'{key}' must be a port between 1 and 65535.")

def _dns_ttl(key: str) -> And:
    # Short, so clients pick up the next task's IP quickly:
    return And(Use(int), lambda n: 0 < n <= MAX_DNS_TTL, error=f"'{key}' must be between 1 and {MAX_DNS_TTL} seconds.")

def _optional_str(value: str) -> str | None:
    # An env var that's set but blank is the same as not setting it:
    return value.strip() or None


env_schema = Schema({
    ## Required, no defaults:
    "CLUSTER": _non_empty("CLUSTER"),
    "SERVICE": _non_empty("SERVICE"),
    "SERVERNAME": _non_empty("SERVERNAME"),
    "DNSZONE": _non_empty("DNSZONE"),
    ## Optional. No topic means no notifications:
    Optional("SNSTOPIC", default=None): And(str, Use(_optional_str)),
    ## Timing (minutes):
    Optional("STARTUPMIN", default=10): _positive_int("STARTUPMIN"),
    Optional("SHUTDOWNMIN", default=20): _positive_int("SHUTDOWNMIN"),
    Optional("DETECTION_TIMEOUT_MIN", default=10): _positive_int("DETECTION_TIMEOUT_MIN"),
    ## Where the game server lives (Same network namespace in awsvpc mode):
    Optional("SERVER_HOST", default="127.0.0.1"): _non_empty("SERVER_HOST"),
    Optional("JAVA_PORT", default=25565): _port("JAVA_PORT"),
    Optional("RCON_PORT", default=25575): _port("RCON_PORT"),
    Optional("RCON_PASSWORD", default="minecraft"): _non_empty("RCON_PASSWORD"),
    Optional("BEDROCK_PORT", default=19132): _port("BEDROCK_PORT"),
    Optional("BEDROCK_ACTIVITY_THRESHOLD", default=60): _positive_int("BEDROCK_ACTIVITY_THRESHOLD"),
    ## DNS:
    Optional("DNS_TTL", default=30): _dns_ttl("DNS_TTL"),
    # ECS injects this into every container in the task:
    Optional("ECS_CONTAINER_METADATA_URI_V4", default=None): And(str, Use(_optional_str)),
}, ignore_extra_keys=True)


# frozen=True: This should never be modified (change the task definition instead)
@dataclass(frozen=True)
class EnvVars:
    """ Env vars that the watchdog needs. """
    # pylint: disable=invalid-name
    CLUSTER: str
    SERVICE: str
    SERVERNAME: str
    DNSZONE: str
    SNSTOPIC: str | None
    STARTUPMIN: int
    SHUTDOWNMIN: int
    DETECTION_TIMEOUT_MIN: int
    SERVER_HOST: str
    JAVA_PORT: int
    RCON_PORT: int
    RCON_PASSWORD: str
    BEDROCK_PORT: int
    BEDROCK_ACTIVITY_THRESHOLD: int
    DNS_TTL: int
    ECS_CONTAINER_METADATA_URI_V4: str | None
    # pylint: enable=invalid-name


def load_env_vars(environ: Mapping[str, str]) -> EnvVars:
    """
    Validate `environ` and build the config from it.

    Raises schema.SchemaError if anything is missing or wrong. Schema reports
    ALL the missing keys at once, so you don't have to fix them one at a time.
    """
    keys = [f.name for f in fields(EnvVars)]
    # Only hand schema the keys we care about, the real environment is huge:
    validated = env_schema.validate({k: environ[k] for k in keys if k in environ})
    return EnvVars(**validated)

@cache
def get_env_vars() -> EnvVars:
    """ Lazy-load and Validate the environment variables """
    return load_env_vars(os.environ)
