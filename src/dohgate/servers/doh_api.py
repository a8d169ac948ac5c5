import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config.config_parser import GatewayConfig
from ..forwarder import QueryForwarder
from ..outcome import GatewayError, GatewayOutcome, NotFound, ServerError
from .request_decoder import BODY_READ_TIMEOUT_MS, decode_from_body, decode_from_query
from .response_encoder import encode_outcome, to_response

logger = logging.getLogger(__name__)

# Every method is routed through the dispatcher so that anything other than
# GET / and POST / is answered with 404 rather than 405.
_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


async def decode_request(request: Request, *, body_timeout_ms: int) -> bytes:
    """
    Brief: Route a request to the GET or POST decoder.

    Inputs:
    - request: FastAPI Request
    - body_timeout_ms: bound on the POST body read

    Outputs:
    - bytes: canonical DNS query

    Raises:
    - NotFound for anything other than GET / and POST /
    - the decoders' BadRequest / UnsupportedMediaType / RequestTimeout
    """
    method = request.method.upper()
    if request.url.path == "/":
        if method == "GET":
            return decode_from_query(request.url.query)
        if method == "POST":
            return await decode_from_body(
                request.headers.get("content-type"),
                request.body,
                timeout_ms=body_timeout_ms,
            )
    raise NotFound()


def create_doh_app(
    forwarder: QueryForwarder,
    *,
    body_timeout_ms: int = BODY_READ_TIMEOUT_MS,
) -> Any:
    """
    Brief: Create FastAPI app implementing the RFC 8484 GET and POST endpoints on /.

    Inputs:
    - forwarder: QueryForwarder shared read-only by every request task
    - body_timeout_ms: bound on the POST body read

    Outputs:
    - FastAPI application.

    Example:
      >>> app = create_doh_app(QueryForwarder(StubResolver([])))
    """

    app = FastAPI(
        title="dohgate",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    async def handle(request: Request) -> GatewayOutcome:
        try:
            raw = await decode_request(request, body_timeout_ms=body_timeout_ms)
            return await forwarder.forward(raw)
        except GatewayError as e:
            return e
        except Exception:
            logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
            return ServerError()

    @app.api_route("/{path:path}", methods=_METHODS, include_in_schema=False)
    async def dispatch(request: Request) -> Response:
        return to_response(encode_outcome(await handle(request)))

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> Response:
        # Unknown methods end up here as 405; the only other route is 404.
        return to_response(encode_outcome(NotFound()))

    return app


def serve_doh(
    cfg: GatewayConfig,
    forwarder: QueryForwarder,
    *,
    log_level: Optional[str] = None,
) -> None:
    """
    Brief: Serve the DoH app with uvicorn on the configured listen address.

    Inputs:
    - cfg: GatewayConfig providing listen_host/listen_port
    - forwarder: QueryForwarder for the app
    - log_level: optional uvicorn log level name

    Outputs:
    - None; returns when uvicorn shuts down (SIGINT/SIGTERM).
    """
    import uvicorn

    app = create_doh_app(forwarder)
    config = uvicorn.Config(
        app,
        host=cfg.listen_host,
        port=cfg.listen_port,
        log_level=log_level or "info",
        # Keep the handlers installed by init_logging.
        log_config=None,
    )
    server = uvicorn.Server(config)
    logger.info("Starting DoH server on %s", cfg.listen)
    server.run()
