"""Decoding of RFC 8484 requests into DNS wire-format query bytes.

GET requests carry the query base64url-encoded (without padding) in the
``dns`` URL parameter; POST requests carry it as the raw request body with
``Content-Type: application/dns-message``.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
import urllib.parse
from typing import Awaitable, Callable, Optional

from starlette.requests import ClientDisconnect

from ..outcome import BadRequest, RequestTimeout, UnsupportedMediaType

logger = logging.getLogger(__name__)

DNS_MESSAGE_CT = "application/dns-message"

BODY_READ_TIMEOUT_MS = 1000

_B64URL_RE = re.compile(r"[A-Za-z0-9_-]*={0,2}")


def _b64url_decode_nopad(s: str) -> bytes:
    """
    Brief: Decode base64url without padding.

    Inputs:
    - s: base64url string without '='

    Outputs:
    - bytes: decoded binary

    Raises:
    - ValueError when s is not valid base64url

    Example:
        >>> _b64url_decode_nopad('AQI')
        b'\x01\x02'
    """
    if not isinstance(s, str):
        raise ValueError("input must be str")
    # urlsafe_b64decode silently drops characters outside the alphabet.
    if not _B64URL_RE.fullmatch(s):
        raise ValueError("invalid base64url characters")
    s = s.rstrip("=")
    pad = "=" * ((4 - len(s) % 4) % 4)
    try:
        return base64.urlsafe_b64decode(s + pad)
    except binascii.Error as e:
        raise ValueError(str(e)) from e


def decode_from_query(query_string: str) -> bytes:
    """
    Brief: Extract and decode the ``dns`` parameter of a GET request.

    Inputs:
    - query_string: raw URL query string (without the leading '?')

    Outputs:
    - bytes: DNS query exactly as encoded by the client

    Raises:
    - BadRequest("Missing the dns parameter") when absent or empty
    - BadRequest("Could not decode the request") when not base64url
    """
    params = urllib.parse.parse_qsl(query_string or "", keep_blank_values=True)
    dns_param = next((v for k, v in params if k == "dns"), None)
    if not dns_param:
        raise BadRequest("Missing the dns parameter")
    try:
        return _b64url_decode_nopad(dns_param)
    except ValueError:
        raise BadRequest("Could not decode the request")


def is_dns_message(content_type: Optional[str]) -> bool:
    """Return True when content_type is exactly application/dns-message."""
    if not content_type:
        return False
    return content_type.strip().lower() == DNS_MESSAGE_CT


async def decode_from_body(
    content_type: Optional[str],
    read_body: Callable[[], Awaitable[bytes]],
    *,
    timeout_ms: int = BODY_READ_TIMEOUT_MS,
) -> bytes:
    """
    Brief: Read the DNS query carried in a POST body.

    Inputs:
    - content_type: value of the Content-Type header, or None
    - read_body: coroutine function returning the full request body
    - timeout_ms: upper bound on the body read

    Outputs:
    - bytes: the request body

    Raises:
    - UnsupportedMediaType for a missing or different content type
    - RequestTimeout when the body is not received within timeout_ms
    - BadRequest("Network error") when the client transport fails
    """
    if not is_dns_message(content_type):
        raise UnsupportedMediaType()
    try:
        return await asyncio.wait_for(read_body(), timeout=timeout_ms / 1000.0)
    except asyncio.TimeoutError:
        logger.debug("Request body not received within %d ms", timeout_ms)
        raise RequestTimeout()
    except (OSError, ClientDisconnect) as e:
        logger.debug("Network error while reading request body: %s", e)
        raise BadRequest("Network error") from e
