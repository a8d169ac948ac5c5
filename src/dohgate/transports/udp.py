import ipaddress
import socket

# Large enough for EDNS(0) answers; truncated replies fall back to TCP.
MAX_UDP_PAYLOAD = 65535


class UDPError(Exception):
    """
    Brief: DNS-over-UDP transport error.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def _family(host: str) -> int:
    if ipaddress.ip_address(host).version == 6:
        return socket.AF_INET6
    return socket.AF_INET


def udp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    timeout_ms: int = 2000,
) -> bytes:
    """
    Brief: Perform a single UDP DNS query against a literal IP upstream.

    Inputs:
    - host: upstream resolver IPv4/IPv6 literal
    - port: upstream UDP port
    - query: wire-format DNS query bytes
    - timeout_ms: socket timeout in milliseconds

    Outputs:
    - bytes: first datagram received from the upstream

    Example:
        >>> try:
        ...     udp_query('127.0.0.1', 53, b'\x00\x01', timeout_ms=100)
        ... except UDPError:
        ...     pass
    """
    try:
        with socket.socket(_family(host), socket.SOCK_DGRAM) as s:
            s.settimeout(timeout_ms / 1000.0)
            # connect() makes the kernel drop datagrams from other peers
            s.connect((host, int(port)))
            s.send(query)
            return s.recv(MAX_UDP_PAYLOAD)
    except (OSError, ValueError) as e:
        raise UDPError(f"UDP error with {host}:{port}: {e}") from e
