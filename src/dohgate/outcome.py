"""Request outcomes of the DoH gateway.

A successful request produces the upstream answer as ``bytes``. Every failure
is raised as one of the GatewayError subclasses below; each carries the HTTP
status it maps to and the text body sent back to the client.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Optional, Union


class GatewayError(Exception):
    """
    Brief: Base class for request-scoped gateway failures.

    Inputs:
    - reason: optional text body; defaults to the canonical reason phrase of
      ``status_code``.

    Outputs:
    - Exception instance with ``status_code`` and ``reason``.
    """

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, reason: Optional[str] = None) -> None:
        if reason is None:
            reason = HTTPStatus(self.status_code).phrase
        super().__init__(reason)
        self.reason = reason


class BadRequest(GatewayError):
    status_code = HTTPStatus.BAD_REQUEST


class UnsupportedMediaType(GatewayError):
    status_code = HTTPStatus.UNSUPPORTED_MEDIA_TYPE

    def __init__(self, reason: str = "Unsupported content type") -> None:
        super().__init__(reason)


class RequestTimeout(GatewayError):
    status_code = HTTPStatus.REQUEST_TIMEOUT


class NotFound(GatewayError):
    status_code = HTTPStatus.NOT_FOUND


class ServerError(GatewayError):
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR


GatewayOutcome = Union[bytes, GatewayError]
