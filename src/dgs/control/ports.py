import contextlib
import socket

from dgs.control.errors import PortAllocationError

SOCKET_TYPES = {"tcp": socket.SOCK_STREAM, "udp": socket.SOCK_DGRAM}
ATTEMPTS = 10


def _bind(kind: int, host: str, port: int) -> int:
    with contextlib.closing(socket.socket(socket.AF_INET, kind)) as s:
        s.bind((host, port))
        return s.getsockname()[1]


def allocate_port(protocol: str = "tcp", host: str = "", attempts: int = ATTEMPTS) -> int:
    """Ask the OS for a port on ``host`` that is unused for both TCP and UDP.

    The pick is made with a socket of ``protocol``'s type, then the same
    number is bound with the other type. A port busy for the other protocol
    is dropped and a new one picked, up to ``attempts`` times.
    """
    protocol = protocol.lower()
    if protocol not in SOCKET_TYPES:
        raise PortAllocationError(f"Unsupported protocol: {protocol}")
    kind = SOCKET_TYPES[protocol]
    other = SOCKET_TYPES["udp" if protocol == "tcp" else "tcp"]

    last_error = None
    for _ in range(attempts):
        try:
            port = _bind(kind, host, 0)
        except OSError as e:
            raise PortAllocationError(f"Did not find any open port: {e}") from e
        try:
            _bind(other, host, port)
        except OSError as e:
            last_error = e
            continue
        return port
    raise PortAllocationError(
        f"Did not find any open port after {attempts} attempts: {last_error}"
    )
