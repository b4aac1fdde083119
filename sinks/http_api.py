"""HTTP egress module - serves the outlet store as JSON"""
import logging

import uvicorn
from fastapi import FastAPI, Request, Response

from store.outlets import OutletStore

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


def create_app(store: OutletStore) -> FastAPI:
    """Build the API around an existing store instance."""
    app = FastAPI(title="Charge Monitor", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.store = store

    @app.middleware("http")
    async def cors(request: Request, call_next):
        # Preflight is answered here for every path
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)

        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    # Any method besides OPTIONS gets the snapshot
    @app.api_route("/outlets", methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"])
    async def get_outlets(request: Request) -> Response:
        return Response(
            content=request.app.state.store.snapshot(),
            media_type="application/json"
        )

    return app


def parse_address(address: str) -> tuple[str, int]:
    """Split a "host:port" bind address; an empty host binds all interfaces."""
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"invalid bind address {address!r}, expected host:port")
    try:
        port_number = int(port)
    except ValueError as e:
        raise ValueError(f"invalid port in bind address {address!r}") from e
    return host.strip("[]") or "0.0.0.0", port_number


async def serve(app: FastAPI, address: str) -> None:
    """Run the API with uvicorn inside the current event loop."""
    host, port = parse_address(address)
    config = uvicorn.Config(app, host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)
    logger.info(f"HTTP: Starting server on {host}:{port}")
    await server.serve()
