"""Image Fusion — FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :data:`~imagefusion.core.config.config`
  (``IMAGEFUSION_*`` environment variables).
- **Merging** is performed by :class:`~imagefusion.core.pipeline.MergePipeline`,
  created at startup and stored on ``app.state.pipeline``.  Backend clients
  are created lazily on the first merge.
- **Persistence** uses one directory per session under ``uploads_dir`` and a
  single ``activity_log.json`` file — no database required.
- **Session artifacts** are served by FastAPI's ``StaticFiles`` at
  ``/uploads``.

Endpoints
---------
========  ================================  ==================================
Method    Path                              Purpose
========  ================================  ==================================
GET       ``/api/health``                   Liveness check
GET       ``/api/config``                   Styles, models and defaults
POST      ``/api/merge``                    Merge two images into a new one
GET       ``/api/admin/logs``               Activity log with session metadata
DELETE    ``/api/admin/logs/{session_id}``  Delete a log entry and its session
========  ================================  ==================================

Errors from ``/api/merge`` are returned as ``{"error": "<message>"}`` with
status 400 (missing image or malformed body) or 500 (any backend or persistence failure).

Usage
-----
CLI (installed entry point)::

    imagefusion

Direct invocation::

    python -m imagefusion.api.main
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from imagefusion import __version__
from imagefusion.api.auth import require_admin
from imagefusion.api.models import MergeRequest
from imagefusion.core.catalog import list_models, list_styles
from imagefusion.core.config import config
from imagefusion.core.errors import PipelineError
from imagefusion.core.pipeline import MergeInput, MergePipeline, MergeResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application lifecycle: pipeline setup.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the merge pipeline on startup.

    No backend connection is opened here; the OpenAI and Replicate clients
    are created on the first merge request.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    app.state.config = config
    app.state.pipeline = MergePipeline.from_config(config)
    logger.info(
        f"Image Fusion {__version__} ready "
        f"(default style={config.default_style}, model={config.default_model}, "
        f"admin={'on' if config.admin_enabled else 'off'})"
    )

    yield


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Image Fusion",
    description="Merge two images into one generated artwork.",
    version=__version__,
    lifespan=lifespan,
)

# Allow cross-origin requests so the frontend can be served from a different
# port during development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Session folders (source images, result, metadata) are served read-only.
app.mount("/uploads", StaticFiles(directory=str(config.uploads_dir)), name="uploads")


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    """Render pipeline failures as ``{"error": message}``."""
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render malformed request bodies as a 400 ``{"error": message}``."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "invalid value")
        problems.append(f"{location}: {message}" if location else message)
    detail = "; ".join(problems) or "Malformed request body"
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {detail}"})


# ---------------------------------------------------------------------------
# Helpers.
# ---------------------------------------------------------------------------


def _client_address(request: Request) -> str:
    """Return the peer address of the caller.

    Forwarding headers are not read here.  Behind a reverse proxy, uvicorn
    rewrites the peer address from ``X-Forwarded-For`` only for proxies listed
    in ``IMAGEFUSION_FORWARDED_ALLOW_IPS``.
    """
    if request.client:
        return request.client.host
    return "unknown"


def _merge_response(result: MergeResult) -> dict:
    """Build the ``POST /api/merge`` success payload."""
    state = result.state
    meta = {
        "style": state.style.key,
        "styleName": state.style.name,
        "model": state.model.key,
        "modelName": state.model.name,
        "provider": state.model.provider.value,
        "description1": state.description1,
        "description2": state.description2,
        "imagePrompt": state.prompt,
        "stylePromptSuffix": state.style.directive,
        "sessionId": result.session.session_id,
        "sessionDir": result.session.directory_name,
    }
    if state.creative_concept:
        meta["creativeConcept"] = state.creative_concept
    return {"imageUrl": result.image_url, "meta": meta}


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/api/health")
async def health() -> dict:
    """Liveness check."""
    return {"status": "ok", "version": __version__}


@app.get("/api/config")
async def get_config(request: Request) -> dict:
    """Return the style and model catalogs for the frontend.

    Returns:
        Dictionary with keys ``version``, ``defaultStyle``, ``defaultModel``,
        ``styles`` and ``models``.
    """
    cfg = request.app.state.config
    return {
        "version": __version__,
        "defaultStyle": cfg.default_style,
        "defaultModel": cfg.default_model,
        "styles": list_styles(),
        "models": list_models(),
    }


@app.post("/api/merge")
async def merge_images(req: MergeRequest, request: Request) -> dict:
    """Merge two images into one generated image.

    This endpoint runs the full pipeline:

    1. Validates that both images are present.
    2. Describes each image with the vision backend.
    3. For fusion styles, synthesizes a single creature concept.
    4. Assembles the style-specific generation prompt.
    5. Generates the image with the provider of the selected model.
    6. Persists the session folder and appends an activity log entry.

    Args:
        req: Validated :class:`MergeRequest` payload.
        request: The raw request (client address, user agent).

    Returns:
        Dictionary with ``imageUrl`` and a ``meta`` bundle.

    Raises:
        PipelineError: Rendered as 400/500 ``{"error": ...}`` by
            :func:`pipeline_error_handler`.
    """
    pipeline: MergePipeline = request.app.state.pipeline
    result = await pipeline.run(
        MergeInput(
            image1=req.image1,
            image2=req.image2,
            style_key=req.style,
            model_key=req.model,
            client_address=_client_address(request),
            user_agent=request.headers.get("user-agent", ""),
        )
    )
    return _merge_response(result)


@app.get("/api/admin/logs", dependencies=[Depends(require_admin)])
async def get_logs(request: Request) -> dict:
    """Return the activity log, newest first.

    Each entry whose session folder still exists is enriched with the
    session's ``metadata``; entries pointing at deleted sessions are returned
    as stored.

    Returns:
        Dictionary with ``total`` and ``entries``.
    """
    pipeline: MergePipeline = request.app.state.pipeline
    entries = list(reversed(pipeline.activity_log.read_all()))

    enriched: list[dict] = []
    for entry in entries:
        metadata = pipeline.sessions.load_metadata(entry.get("session_dir", ""))
        enriched.append({**entry, "metadata": metadata} if metadata else entry)

    return {"total": len(enriched), "entries": enriched}


@app.delete("/api/admin/logs/{session_id}", dependencies=[Depends(require_admin)])
async def delete_log_entry(session_id: str, request: Request) -> dict:
    """Delete a log entry together with its session folder.

    Args:
        session_id: Session identifier of the entry.

    Returns:
        Dictionary with ``success``, ``deleted`` and ``sessionDeleted``.

    Raises:
        HTTPException: 404 if no log entry has this session id.
    """
    pipeline: MergePipeline = request.app.state.pipeline
    entry = next(
        (e for e in pipeline.activity_log.read_all() if e.get("session_id") == session_id),
        None,
    )
    if not entry:
        raise HTTPException(status_code=404, detail="Log entry not found")

    # Remove the folder first so a failure leaves the entry pointing at it.
    session_deleted = pipeline.sessions.delete(entry.get("session_dir", ""))
    pipeline.activity_log.delete(session_id)

    return {"success": True, "deleted": session_id, "sessionDeleted": session_deleted}


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~imagefusion.core.config.config`
    (``IMAGEFUSION_SERVER_HOST`` / ``IMAGEFUSION_SERVER_PORT``).  Defaults to
    ``0.0.0.0:3100``.

    This function is registered as the ``imagefusion`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not (config.openai_api_key or os.environ.get("OPENAI_API_KEY")):
        logger.warning("No OpenAI API key configured; merges will fail until one is set")

    uvicorn.run(
        "imagefusion.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
        proxy_headers=True,
        forwarded_allow_ips=config.forwarded_allow_ips,
    )


if __name__ == "__main__":
    main()
