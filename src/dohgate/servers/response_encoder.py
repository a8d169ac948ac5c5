"""Mapping of gateway outcomes to HTTP responses."""

from __future__ import annotations

from typing import NamedTuple

from fastapi import Response, status

from ..outcome import GatewayError, GatewayOutcome
from .request_decoder import DNS_MESSAGE_CT

TEXT_CT = "text/plain"


class EncodedResponse(NamedTuple):
    status_code: int
    content_type: str
    body: bytes


def encode_outcome(outcome: GatewayOutcome) -> EncodedResponse:
    """
    Brief: Map a request outcome to (status, content type, body).

    Inputs:
    - outcome: answer bytes on success, or a GatewayError

    Outputs:
    - EncodedResponse: 200 application/dns-message for answers; the error's
      status with its text/plain reason otherwise.

    Example:
        >>> encode_outcome(b"\x00").status_code
        200
    """
    if isinstance(outcome, GatewayError):
        return EncodedResponse(
            int(outcome.status_code), TEXT_CT, outcome.reason.encode("utf-8")
        )
    return EncodedResponse(status.HTTP_200_OK, DNS_MESSAGE_CT, bytes(outcome))


def to_response(encoded: EncodedResponse) -> Response:
    # Explicit headers keep Starlette from appending "; charset=utf-8".
    return Response(
        content=encoded.body,
        status_code=encoded.status_code,
        headers={
            "Content-Type": encoded.content_type,
            "Content-Length": str(len(encoded.body)),
        },
    )
