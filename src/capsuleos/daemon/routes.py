"""HTTP routes for the CapsuleOS daemon.

Every write goes to disk first, then updates the search index synchronously
before the response is sent, so a client that writes and then searches sees
its own write. The watcher only covers edits made outside the API.
"""

from __future__ import annotations

import functools
import importlib.metadata
import json
import os
import sys
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from capsuleos.config.constants import SEARCH_MAX_LIMIT
from capsuleos.core.errors import CapsuleError, InternalError, NotFoundError, StoreError
from capsuleos.store.models import DocumentDraft
from capsuleos.store.version import archive_path

if TYPE_CHECKING:
    from capsuleos.daemon.lifecycle import ServerController

logger = structlog.get_logger()

CAPSULES_MODULE = "capsules"

_TRUTHY = frozenset({"1", "true", "yes", "on"})

Handler = Callable[[Request], Awaitable[JSONResponse]]


def _get_version() -> str:
    """Get package version from installed metadata."""
    try:
        return importlib.metadata.version("capsuleos")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _get_runtime_info() -> dict[str, Any]:
    return {
        "python_version": sys.version.split()[0],
        "pid": os.getpid(),
    }


def parse_flag(value: str | None) -> bool:
    """Query-string boolean: 1/true/yes/on, case-insensitive."""
    return value is not None and value.strip().lower() in _TRUTHY


def parse_limit(value: str | None, default: int) -> int:
    """Parse ``limit``, clamped to 1..SEARCH_MAX_LIMIT. Garbage means default."""
    try:
        limit = int(value) if value is not None else default
    except ValueError:
        limit = default
    return max(1, min(limit, SEARCH_MAX_LIMIT))


def error_status(error: CapsuleError) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, StoreError):
        return 400
    return 500


def error_response(error: CapsuleError) -> JSONResponse:
    return JSONResponse(error.to_dict(), status_code=error_status(error))


def handle_errors(handler: Handler) -> Handler:
    """Map CapsuleError to its status code; anything else becomes a 500."""

    @functools.wraps(handler)
    async def wrapper(request: Request) -> JSONResponse:
        try:
            return await handler(request)
        except CapsuleError as e:
            logger.info("request_rejected", path=request.url.path, error=e.error_name)
            return error_response(e)
        except ValidationError as e:
            return error_response(StoreError.invalid_payload(_first_error(e)))
        except Exception as e:
            logger.exception("request_error", path=request.url.path)
            return error_response(InternalError.unexpected(str(e)))

    return wrapper


def _first_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}" if location else first["msg"]


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise StoreError.invalid_payload(f"request body is not JSON: {e}") from e
    if not isinstance(body, dict):
        raise StoreError.invalid_payload("request body must be a JSON object")
    return body


def create_routes(controller: ServerController) -> list[Route]:
    """Create HTTP routes bound to the daemon controller."""
    start_time = time.time()
    version = _get_version()
    store = controller.store
    file_ops = controller.file_ops
    index = controller.index

    # -----------------------------------------------------------------
    # Diagnostics
    # -----------------------------------------------------------------

    async def health(request: Request) -> JSONResponse:
        """Liveness probe. For detailed diagnostics, use /status instead."""
        _ = request  # unused
        return JSONResponse(
            {
                "status": "healthy",
                "data_root": str(controller.data_root),
                "version": version,
                "uptime_seconds": round(time.time() - start_time, 1),
            }
        )

    async def status(request: Request) -> JSONResponse:
        _ = request  # unused
        watcher = controller.watcher
        reconciler = controller.reconciler
        return JSONResponse(
            {
                "data_root": str(controller.data_root),
                "version": version,
                "uptime_seconds": round(time.time() - start_time, 1),
                "runtime": _get_runtime_info(),
                "index": index.stats(),
                "watcher": {
                    "enabled": watcher is not None,
                    "running": watcher is not None and watcher.running,
                },
                "reconciler": reconciler.status if reconciler is not None else None,
            }
        )

    # -----------------------------------------------------------------
    # Search
    # -----------------------------------------------------------------

    @handle_errors
    async def search(request: Request) -> JSONResponse:
        params = request.query_params
        results = index.query(
            params.get("q", ""),
            include_archived=parse_flag(params.get("includeArchived")),
            versions="all" if params.get("versions") == "all" else "latest",
            limit=parse_limit(params.get("limit"), controller.config.search.default_limit),
        )
        return JSONResponse({"results": [entry.to_result() for entry in results]})

    # -----------------------------------------------------------------
    # Raw files
    # -----------------------------------------------------------------

    async def list_files(request: Request) -> JSONResponse:
        folder = request.path_params["folder"]
        try:
            names = file_ops.list_folder(folder)
        except (CapsuleError, OSError) as e:
            logger.warning("list_files_failed", folder=folder, error=str(e))
            names = []
        return JSONResponse(names)

    @handle_errors
    async def read_file(request: Request) -> JSONResponse:
        try:
            content = file_ops.read(request.path_params["path"])
        except UnicodeDecodeError as e:
            raise StoreError.invalid_payload(f"file is not UTF-8 text: {e}") from e
        return JSONResponse({"content": content})

    @handle_errors
    async def write_file(request: Request) -> JSONResponse:
        body = await _json_body(request)
        content = body.get("content")
        if not isinstance(content, str):
            raise StoreError.invalid_payload("'content' must be a string")
        target = file_ops.write(request.path_params["path"], content)
        index.add_or_update(target)
        return JSONResponse({"success": True})

    @handle_errors
    async def delete_file(request: Request) -> JSONResponse:
        target = file_ops.delete(request.path_params["path"])
        index.remove(target)
        return JSONResponse({"success": True})

    # -----------------------------------------------------------------
    # Versioned capsules
    # -----------------------------------------------------------------

    @handle_errors
    async def list_capsules(request: Request) -> JSONResponse:
        archived = parse_flag(request.query_params.get("archived"))
        documents = store.list_latest(archive_path(CAPSULES_MODULE, archived))
        documents.sort(key=lambda d: d.base)
        return JSONResponse([doc.to_response() for doc in documents])

    @handle_errors
    async def save_capsule(request: Request) -> JSONResponse:
        draft = DocumentDraft.model_validate(await _json_body(request))
        record = store.create_or_update(draft, CAPSULES_MODULE)
        return JSONResponse(record.to_response())

    @handle_errors
    async def delete_capsule(request: Request) -> JSONResponse:
        doc_id = request.path_params["doc_id"]
        archived = parse_flag(request.query_params.get("archived"))
        removed = store.delete(doc_id, archive_path(CAPSULES_MODULE, archived))
        return JSONResponse({"success": True, "removed": len(removed)})

    @handle_errors
    async def list_versions(request: Request) -> JSONResponse:
        base = request.path_params["base"]
        archived = parse_flag(request.query_params.get("archived"))
        versions = store.versions(base, archive_path(CAPSULES_MODULE, archived))
        if not versions:
            raise NotFoundError.document(base, archive_path(CAPSULES_MODULE, archived))
        return JSONResponse({"base": base, "versions": versions})

    @handle_errors
    async def restore_capsule(request: Request) -> JSONResponse:
        base = request.path_params["base"]
        body = await _json_body(request)
        target = body.get("version")
        if isinstance(target, bool) or not isinstance(target, int):
            raise StoreError.invalid_payload("'version' must be an integer")
        archived = parse_flag(request.query_params.get("archived"))
        record = store.restore(base, target, archive_path(CAPSULES_MODULE, archived))
        return JSONResponse(record.to_response())

    @handle_errors
    async def archive_capsule(request: Request) -> JSONResponse:
        doc_id = request.path_params["doc_id"]
        body = await _json_body(request)
        archived = body.get("archived", True)
        if not isinstance(archived, bool):
            raise StoreError.invalid_payload("'archived' must be a boolean")
        moved = store.set_archived(doc_id, CAPSULES_MODULE, archived)
        return JSONResponse({"success": True, "archived": archived, "moved": len(moved)})

    return [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/api/search", search, methods=["GET"]),
        Route("/api/files/{folder:path}", list_files, methods=["GET"]),
        Route("/api/file/{path:path}", read_file, methods=["GET"]),
        Route("/api/file/{path:path}", write_file, methods=["POST"]),
        Route("/api/file/{path:path}", delete_file, methods=["DELETE"]),
        Route("/api/capsules", list_capsules, methods=["GET"]),
        Route("/api/capsules", save_capsule, methods=["POST"]),
        Route("/api/capsules/{doc_id}", delete_capsule, methods=["DELETE"]),
        Route("/api/capsules/{doc_id}/archive", archive_capsule, methods=["POST"]),
        Route("/api/versions/{base}", list_versions, methods=["GET"]),
        Route("/api/restore/{base}", restore_capsule, methods=["POST"]),
    ]
