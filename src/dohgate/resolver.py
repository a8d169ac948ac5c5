"""Stub resolver used as the gateway's upstream resolution capability.

Brief:
  StubResolver takes a single parsed DNS question, builds a fresh recursive
  query for it and sends that query to the configured upstream servers, one
  at a time in configured order, until one answers. Blocking socket I/O runs
  in the event loop's default executor so request tasks stay responsive.

Inputs:
  - UpstreamServer descriptors and a per-attempt timeout.

Outputs:
  - Wire-format DNS answers, or ResolverError when no server answered.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import random
from typing import Optional, Sequence, Tuple

from dnslib import QTYPE, RCODE, DNSHeader, DNSQuestion, DNSRecord

from .config.config_parser import DEFAULT_TIMEOUT_MS, GatewayConfig
from .config.server_spec import DnsTransport, UpstreamServer
from .transports.tcp import tcp_query
from .transports.udp import udp_query

logger = logging.getLogger(__name__)

# Used when the configuration lists no upstream servers at all.
DEFAULT_SERVERS: Tuple[UpstreamServer, ...] = (
    UpstreamServer(ipaddress.ip_address("127.0.0.1"), 53, DnsTransport.UDP),
)


class ResolverError(Exception):
    """
    Brief: No upstream server produced a usable answer.

    Inputs:
    - message: description of the last failure

    Outputs:
    - Exception instance
    """

    pass


class StubResolver:
    """
    Brief: Forward single questions to upstream servers over UDP or TCP.

    Inputs (constructor):
    - servers: upstream servers tried in order; empty means DEFAULT_SERVERS.
    - timeout_ms: timeout applied to each upstream attempt.

    Outputs:
    - StubResolver whose ``query`` coroutine returns answer bytes.

    Notes:
    - Instances hold no mutable state and are shared by all request tasks.
    - A truncated UDP answer is retried over TCP against the same server.
    - Unparseable replies, mismatched ids and SERVFAIL answers count as a
      failure of that server and the next one is tried.

    Example:
      >>> r = StubResolver([parse_server_spec("udp://9.9.9.9")])
      >>> # answer = await r.query(DNSQuestion("example.com"))
    """

    def __init__(
        self,
        servers: Sequence[UpstreamServer],
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        if not servers:
            logger.warning(
                "No upstream DNS servers configured; using %s",
                ",".join(str(s) for s in DEFAULT_SERVERS),
            )
            servers = DEFAULT_SERVERS
        self._servers = tuple(servers)
        self._timeout_ms = int(timeout_ms)

    @classmethod
    def from_config(cls, cfg: GatewayConfig) -> "StubResolver":
        return cls(cfg.servers, timeout_ms=cfg.timeout_ms)

    @property
    def servers(self) -> Tuple[UpstreamServer, ...]:
        return self._servers

    @property
    def timeout_ms(self) -> int:
        return self._timeout_ms

    async def query(self, question: DNSQuestion) -> bytes:
        """
        Brief: Resolve one question through the upstream servers.

        Inputs:
        - question: dnslib DNSQuestion (qname, qtype, qclass)

        Outputs:
        - bytes: wire-format answer from the first server that succeeded

        Raises:
        - ResolverError when every server failed.
        """
        qid = random.randint(0, 0xFFFF)
        request = DNSRecord(DNSHeader(id=qid, rd=1), q=question)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self._resolve, request.pack(), qid, str(question.qname)
        )

    def _resolve(self, wire: bytes, qid: int, qname: str) -> bytes:
        last_error: Optional[Exception] = None
        for server in self._servers:
            try:
                logger.debug("Forwarding %s to %s", qname, server)
                return self._exchange(server, wire, qid)
            except Exception as e:
                logger.warning("Upstream %s failed for %s: %s", server, qname, e)
                last_error = e
        raise ResolverError(f"all upstream servers failed: {last_error}")

    def _exchange(self, server: UpstreamServer, wire: bytes, qid: int) -> bytes:
        if server.transport is DnsTransport.UDP:
            reply = udp_query(server.host, server.port, wire, timeout_ms=self._timeout_ms)
            if not self._check_reply(server, reply, qid).header.tc:
                return reply
            logger.debug("Truncated UDP answer from %s; retrying over TCP", server)

        reply = tcp_query(
            server.host,
            server.port,
            wire,
            connect_timeout_ms=self._timeout_ms,
            read_timeout_ms=self._timeout_ms,
        )
        self._check_reply(server, reply, qid)
        return reply

    @staticmethod
    def _check_reply(server: UpstreamServer, reply: bytes, qid: int) -> DNSRecord:
        try:
            parsed = DNSRecord.parse(reply)
        except Exception as e:
            raise ResolverError(f"malformed reply from {server}: {e}") from e
        if parsed.header.id != qid:
            raise ResolverError(
                f"reply id {parsed.header.id} from {server} does not match query id {qid}"
            )
        if parsed.header.rcode == RCODE.SERVFAIL:
            q = parsed.q
            raise ResolverError(
                f"SERVFAIL from {server} for {q.qname} {QTYPE.get(q.qtype)}"
            )
        return parsed
