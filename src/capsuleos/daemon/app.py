"""Starlette application factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse

from capsuleos.daemon.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from capsuleos.daemon.routes import create_routes

if TYPE_CHECKING:
    from capsuleos.daemon.lifecycle import ServerController


async def _not_found(request: Request, exc: Exception) -> JSONResponse:
    _ = request, exc  # unused
    return JSONResponse({"error": "Not found"}, status_code=404)


def create_app(controller: ServerController) -> Starlette:
    """Create the Starlette application bound to a controller.

    Component start/stop is driven by ``run_server``, not by the app
    lifespan, so tests can serve the app without a watcher.
    """
    app = Starlette(
        routes=create_routes(controller),
        exception_handlers={404: _not_found},
    )

    # Added last runs first: logging wraps the security headers
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    return app
