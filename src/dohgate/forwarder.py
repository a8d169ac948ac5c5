from __future__ import annotations

import logging
from typing import Awaitable, Protocol

from dnslib import CLASS, QTYPE, DNSQuestion, DNSRecord

from .outcome import ServerError

logger = logging.getLogger(__name__)


class Resolver(Protocol):
    """Upstream resolution capability: one question in, answer bytes out."""

    def query(self, question: DNSQuestion) -> Awaitable[bytes]: ...


def parse_single_question(raw: bytes) -> DNSQuestion:
    """
    Brief: Parse a DNS wire message and return its only question.

    Inputs:
    - raw: wire-format DNS query bytes

    Outputs:
    - DNSQuestion

    Raises:
    - ServerError when the message is malformed or does not carry exactly
      one question. Both surface as 500 since the HTTP request itself was
      well formed.
    """
    try:
        message = DNSRecord.parse(raw)
    except Exception as e:
        logger.debug("Could not parse DNS message (%d bytes): %s", len(raw), e)
        raise ServerError() from e

    if len(message.questions) != 1:
        logger.debug("Rejecting DNS message with %d questions", len(message.questions))
        raise ServerError()
    return message.questions[0]


class QueryForwarder:
    """
    Brief: Validate decoded DoH queries and hand them to the upstream resolver.

    Inputs (constructor):
    - resolver: object with an async ``query(question) -> bytes`` method

    Outputs:
    - QueryForwarder whose ``forward`` coroutine returns answer bytes.
    """

    def __init__(self, resolver: Resolver) -> None:
        self.resolver = resolver

    async def forward(self, raw: bytes) -> bytes:
        """
        Brief: Forward one DNS query and return the upstream answer verbatim.

        Inputs:
        - raw: wire-format DNS query bytes decoded from the HTTP request

        Outputs:
        - bytes: wire-format DNS answer

        Raises:
        - ServerError for malformed queries and for any resolver failure.
        """
        question = parse_single_question(raw)
        logger.info(
            "DNS query: %s %s %s",
            question.qname,
            QTYPE.get(question.qtype),
            CLASS.get(question.qclass),
        )
        try:
            return await self.resolver.query(question)
        except Exception as e:
            logger.warning("Resolution of %s failed: %s", question.qname, e)
            raise ServerError() from e
