"""
Small value types passed between the probes, monitors and state machine.
"""

from enum import Enum
from typing import Any
from dataclasses import dataclass


class Edition(Enum):
    """ Which protocol family the server speaks. Decided once per process. """
    JAVA = "java"
    BEDROCK = "bedrock"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ProbeResult:
    """ Result of one probe. Never stored, a new one is made each call. """
    reachable: bool
    detail: Any = None


@dataclass(frozen=True)
class PingResponse:
    """
    Bedrock "unconnected pong", as mcstatus parsed it.

    The server id string it came from looks like:
        MCPE;Dedicated Server;671;1.21.2;0;10;13253860892328930865;Bedrock level;Survival;1;19132;19133;
    """
    edition: str
    motd: str
    protocol: int
    version: str
    players_online: int
    players_max: int
    latency: float = 0.0
