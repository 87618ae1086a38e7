"""
prober.py

Low level network checks against the game server. Nothing in here keeps any
state: every call opens (and closes) its own socket, so they're safe to run
at the same time.

The "check_*" functions answer yes/no and never raise on a dead server. The
"query"/"ping" functions raise a `ProbeError` subclass instead, so the caller
can tell *why* it failed.

RCON goes through the `rcon` library, and Bedrock pings through `mcstatus`.
This module only turns their errors into `ProbeError`s.
"""

import re
import socket
import struct
import ipaddress

import psutil
from mcstatus import BedrockServer
from rcon.exceptions import EmptyResponse, SessionTimeout, WrongPassword
from rcon.source import Client

from .errors import (
    ProbeError,
    ProbeUnreachable,
    ProbeTimeout,
    RconAuthError,
    ProbeProtocolError,
)
from .models import PingResponse

TCP_TIMEOUT = 2.0
RCON_TIMEOUT = 3.0
PING_TIMEOUT = 1.0

#########
## TCP ##
#########
def _validate_port(port: int) -> None:
    # Only a bug can get here, so this one is allowed to raise:
    if not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536:
        raise ValueError(f"Invalid port: '{port}'")

def check_tcp_open(port: int, host: str = "127.0.0.1", timeout: float = TCP_TIMEOUT) -> bool:
    """ True if something accepts a TCP connection on host:port """
    _validate_port(port)
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        # Refused, timed out, unreachable, ... all mean "no":
        return False

def check_tcp_listening(port: int, host: str = "127.0.0.1", timeout: float = TCP_TIMEOUT) -> bool:
    """
    Stronger than `check_tcp_open`. The socket table has to show a LISTEN socket on
    the port, AND a connection has to actually go through.

    The server binds the port a while before it starts servicing the accept
    queue, so just seeing the socket isn't enough.
    """
    _validate_port(port)
    try:
        listening = any(
            conn.laddr and conn.laddr.port == port and conn.status == psutil.CONN_LISTEN
            for conn in psutil.net_connections(kind="tcp")
        )
    except psutil.AccessDenied:
        # Can't read the table (Not root on macOS). The connect is all we have:
        print(f"Can't read the socket table, only checking if port {port} accepts connections.", flush=True)
        listening = True
    return listening and check_tcp_open(port, host=host, timeout=timeout)

def _is_loopback(ip: str) -> bool:
    address = ipaddress.ip_address(ip.split("%")[0])
    # "::ffff:127.0.0.1" doesn't count as loopback on its own:
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return address.is_loopback

def count_established(port: int) -> int:
    """
    Number of ESTABLISHED TCP connections to local `port`.

    Anything coming from loopback is skipped. That's the watchdog's own probes
    (and RCON), not players.
    """
    _validate_port(port)
    try:
        connections = psutil.net_connections(kind="tcp")
    except psutil.AccessDenied as e:
        raise ProbeError(f"Can't read the socket table: {e}") from e
    return sum(
        1 for conn in connections
        if conn.status == psutil.CONN_ESTABLISHED
        and conn.laddr and conn.laddr.port == port
        and conn.raddr and not _is_loopback(conn.raddr.ip)
    )


##########
## RCON ##
##########
# https://minecraft.wiki/w/RCON
# Newer: "There are 1 of a max of 20 players online: Steve"
# Older: "There are 1/20 players online:"
LIST_REGEX = re.compile(r"There are (\d+)\s*(?:of a max of|out of maximum|/)\s*(\d+) players online")

def parse_player_count(reply: str) -> int:
    """ Pull the number of online players out of the `list` command's reply """
    match = LIST_REGEX.search(reply)
    if match is None:
        raise ProbeProtocolError(f"Couldn't parse player count from: '{reply}'")
    return int(match.group(1))

def query_rcon(host: str, port: int, password: str, timeout: float = RCON_TIMEOUT) -> int:
    """
    Log into RCON, run `list`, and return how many players are online.

    Raises:
        RconAuthError: The password was refused.
        ProbeUnreachable: Couldn't connect, timed out, or the session broke.
        ProbeProtocolError: Got a reply, but couldn't make sense of it.
    """
    _validate_port(port)
    try:
        # Logs in on enter:
        with Client(host, port, passwd=password, timeout=timeout) as client:
            reply = client.run("list")
    except WrongPassword as e:
        raise RconAuthError(f"RCON on {host}:{port} refused the password") from e
    except TimeoutError as e:
        raise ProbeUnreachable(f"RCON on {host}:{port} timed out") from e
    except (SessionTimeout, OSError) as e:
        raise ProbeUnreachable(f"Couldn't reach RCON on {host}:{port}: {e!r}") from e
    except (EmptyResponse, UnicodeDecodeError) as e:
        raise ProbeProtocolError(f"Bad reply from RCON on {host}:{port}: {e!r}") from e
    return parse_player_count(reply)


#############
## Bedrock ##
#############
def ping_bedrock(host: str, port: int, timeout: float = PING_TIMEOUT) -> PingResponse:
    """
    RakNet unconnected ping, and wait up to `timeout` for the pong.

    Raises:
        ProbeTimeout: Nothing came back in time.
        ProbeProtocolError: Something came back, but it wasn't a pong.
        ProbeUnreachable: The OS rejected the datagram (ICMP port unreachable, etc).
    """
    _validate_port(port)
    try:
        status = BedrockServer(host, port, timeout=timeout).status()
    except TimeoutError as e:
        raise ProbeTimeout(f"No pong from {host}:{port} after {timeout}s") from e
    except OSError as e:
        raise ProbeUnreachable(f"Couldn't ping {host}:{port}: {e}") from e
    # mcstatus doesn't wrap parse failures:
    except (ValueError, IndexError, struct.error) as e:
        raise ProbeProtocolError(f"Bad pong from {host}:{port}: {e!r}") from e
    return PingResponse(
        edition=status.version.brand,
        motd=status.motd.to_plain(),
        protocol=status.version.protocol,
        version=status.version.name,
        players_online=status.players.online,
        players_max=status.players.max,
        latency=status.latency,
    )


#########
## UDP ##
#########
def udp_datagrams_received(snmp_path: str = "/proc/net/snmp") -> int:
    """
    The kernel's running total of UDP datagrams received (Udp: InDatagrams).

    UDP has no "connected" state to count, so the only thing we can watch is
    how much traffic is coming in. This is for the whole network namespace,
    which in awsvpc mode is just this task.
    """
    try:
        with open(snmp_path, encoding="utf-8") as f:
            udp_lines = [line.split() for line in f if line.startswith("Udp:")]
    except OSError as e:
        raise ProbeError(f"Couldn't read '{snmp_path}': {e}") from e
    # First line is the header, second is the values:
    if len(udp_lines) < 2 or "InDatagrams" not in udp_lines[0]:
        raise ProbeProtocolError(f"No Udp counters in '{snmp_path}'")
    header, values = udp_lines[0], udp_lines[1]
    return int(values[header.index("InDatagrams")])
