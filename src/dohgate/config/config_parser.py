"""Configuration parsing and normalization helpers for dohgate.

Brief:
  This module builds the process-wide GatewayConfig used by the CLI
  entrypoint. It centralizes:
    - parsing the HTTP listen address
    - mapping every upstream server entry through parse_server_spec
    - reading and shape-validating the YAML (or JSON) config file

Inputs:
  - YAML config documents and paths

Outputs:
  - An immutable GatewayConfig plus the raw logging sub-config
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from .server_spec import ConfigError, UpstreamServer, parse_server_spec

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 2000


@dataclass(frozen=True)
class GatewayConfig:
    """Brief: Immutable gateway configuration shared by all request handlers.

    Inputs:
      - listen_host: IP literal the HTTP listener binds to.
      - listen_port: TCP port for the HTTP listener.
      - servers: upstream resolvers in configured order (may be empty).
      - timeout_ms: per-attempt upstream timeout.

    Outputs:
      - GatewayConfig instance.
    """

    listen_host: str
    listen_port: int
    servers: Tuple[UpstreamServer, ...] = field(default_factory=tuple)
    timeout_ms: int = DEFAULT_TIMEOUT_MS

    @property
    def listen(self) -> str:
        if ":" in self.listen_host:
            return f"[{self.listen_host}]:{self.listen_port}"
        return f"{self.listen_host}:{self.listen_port}"


class ServerEntry(BaseModel):
    """Brief: Mapping form of an upstream entry, ``{address, transport}``.

    Inputs:
      - address: ``IP`` or ``IP:port`` (``[v6]:port`` for IPv6).
      - transport: optional ``udp`` or ``tcp``.

    Outputs:
      - ServerEntry instance.
    """

    address: str
    transport: Optional[str] = None

    class Config:
        extra = "forbid"


class ConfigFile(BaseModel):
    """Typed shape of the config document used for startup validation."""

    listen: str
    dns_servers: Optional[List[Union[str, ServerEntry]]] = None
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    logging: Optional[Dict[str, Any]] = None

    class Config:
        extra = "forbid"


def parse_listen_address(listen: str) -> Tuple[str, int]:
    """Brief: Parse a plain ``IP:port`` listen address.

    Inputs:
      - listen: e.g. ``127.0.0.1:8053`` or ``[::1]:8053``.

    Outputs:
      - (host, port) tuple with the host as a normalized IP literal.

    Raises:
      - ConfigError with field ``listen``.

    Example:
      >>> parse_listen_address("[::1]:8053")
      ('::1', 8053)
    """

    if not isinstance(listen, str):
        raise ConfigError("listen address must be a string", field="listen", value=listen)

    host, sep, port_text = listen.strip().rpartition(":")
    if not sep or not host:
        raise ConfigError(
            f"invalid listen address {listen!r}: expected IP:port",
            field="listen",
            value=listen,
        )
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ConfigError(
            f"invalid listen address {listen!r}: IPv6 addresses must be bracketed",
            field="listen",
            value=listen,
        )

    try:
        address = ipaddress.ip_address(host)
    except ValueError as exc:
        raise ConfigError(
            f"invalid listen address {listen!r}: {exc}", field="listen", value=listen
        ) from exc

    if not port_text.isdigit() or not 0 < int(port_text) < 65536:
        raise ConfigError(
            f"invalid listen address {listen!r}: bad port {port_text!r}",
            field="listen",
            value=listen,
        )
    return str(address), int(port_text)


def _entry_to_spec(entry: Union[str, ServerEntry]) -> str:
    """Brief: Normalize a mapping server entry into its URI form.

    Inputs:
      - entry: URI string or ServerEntry.

    Outputs:
      - str: server specification accepted by parse_server_spec.
    """

    if isinstance(entry, str):
        return entry
    if entry.transport is None:
        return entry.address
    transport = entry.transport.strip().lower()
    if transport not in ("udp", "tcp"):
        raise ConfigError(
            f"invalid transport {entry.transport!r} for server {entry.address!r}",
            field="transport",
            value=entry.transport,
        )
    return f"{transport}://{entry.address}"


def build_gateway_config(
    listen: str,
    server_specs: Iterable[Union[str, ServerEntry]] = (),
    *,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> GatewayConfig:
    """Brief: Build the GatewayConfig, failing on the first invalid entry.

    Inputs:
      - listen: HTTP listen address (``IP:port``).
      - server_specs: upstream specs in priority-free configured order.
      - timeout_ms: per-attempt upstream timeout in milliseconds.

    Outputs:
      - GatewayConfig with servers in input order.

    Raises:
      - ConfigError (or ServerSpecError) for the first invalid value; no
        partial configuration is ever returned.
    """

    host, port = parse_listen_address(listen)
    servers = tuple(parse_server_spec(_entry_to_spec(s)) for s in server_specs)
    return GatewayConfig(
        listen_host=host,
        listen_port=port,
        servers=servers,
        timeout_ms=int(timeout_ms),
    )


def describe_servers(servers: Sequence[UpstreamServer]) -> str:
    """Brief: Render servers as a comma separated URI list for logging."""

    return ",".join(str(s) for s in servers)


def load_config_document(cfg: Any) -> Tuple[GatewayConfig, Dict[str, Any]]:
    """Brief: Validate a decoded config document and build the GatewayConfig.

    Inputs:
      - cfg: mapping decoded from YAML/JSON.

    Outputs:
      - (GatewayConfig, logging_cfg) where logging_cfg is a dict (possibly empty).

    Raises:
      - ConfigError when the document shape or any value is invalid.
    """

    if not isinstance(cfg, dict):
        raise ConfigError("Configuration root must be a mapping", field="root", value=cfg)

    try:
        doc = ConfigFile(**cfg)
    except (ValidationError, TypeError) as exc:
        # TypeError: non-string keys cannot be passed as keyword arguments
        raise ConfigError(f"Invalid configuration: {exc}", field="root", value=cfg) from exc

    gateway_cfg = build_gateway_config(
        doc.listen, doc.dns_servers or [], timeout_ms=doc.timeout_ms
    )
    return gateway_cfg, dict(doc.logging or {})


def parse_config_file(config_path: str) -> Tuple[GatewayConfig, Dict[str, Any]]:
    """Brief: Read a YAML/JSON config file and build the GatewayConfig.

    Inputs:
      - config_path: path to the config document.

    Outputs:
      - (GatewayConfig, logging_cfg).

    Raises:
      - ConfigError for invalid content, OSError when the file is unreadable.

    Example config:
        listen: "127.0.0.1:8053"
        dns_servers:
          - udp://9.9.9.9
          - {address: "1.1.1.1:53", transport: tcp}
    """

    with open(config_path, "r") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(
                f"Could not parse {config_path}: {exc}", field="root", value=config_path
            ) from exc

    logger.debug("loaded configuration from %s", config_path)
    return load_config_document(cfg)
