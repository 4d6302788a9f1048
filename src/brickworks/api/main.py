"""Brick-Works - FastAPI Application.

This module defines the FastAPI ``app`` instance, the REST routes that drive
conversion sessions, and the ``main()`` CLI function that launches uvicorn.

Architecture
------------
- **Sessions** are :class:`~brickworks.core.session.SessionOrchestrator`
  instances held in memory by a
  :class:`~brickworks.api.session_store.SessionRegistry` in
  ``app.state.sessions``.  Nothing is persisted; idle sessions expire and the
  least recently used one is evicted when the cap is reached.
- **The generation pipeline** is built lazily from the global configuration
  on first use, so the server starts without credentials and reports a
  ``503`` only when a session actually needs the generative service.
- **The parts validator** shares one ``httpx.AsyncClient`` for the lifetime
  of the application.

Endpoints
---------
========  ================================  ==================================
Method    Path                              Purpose
========  ================================  ==================================
GET       ``/api/config``                   Version, size tiers, default size
POST      ``/api/sessions``                 Create a session
GET       ``/api/sessions/{id}``            Session snapshot
DELETE    ``/api/sessions/{id}``            Discard a session
POST      ``/api/sessions/{id}/image``      Upload the source image
POST      ``/api/sessions/{id}/demo``       Load a configured demo image
DELETE    ``/api/sessions/{id}/image``      Clear the selected image
POST      ``/api/sessions/{id}/size``       Choose the initial size
POST      ``/api/sessions/{id}/convert``    Run the first conversion
POST      ``/api/sessions/{id}/resize``     Add another size version
POST      ``/api/sessions/{id}/select``     Display another version
POST      ``/api/sessions/{id}/reset``      Discard image, versions, errors
GET       ``/api/sessions/{id}/export``     Export data for current version
========  ================================  ==================================

Usage
-----
CLI (installed entry point)::

    brickworks

Direct invocation::

    python -m brickworks.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from brickworks import __version__
from brickworks.api.models import DemoImageRequest, SelectRequest, SessionSnapshot, SizeRequest
from brickworks.api.session_store import SessionRegistry
from brickworks.core.config import config
from brickworks.core.errors import (
    BrickworksError,
    ConfigurationError,
    ConversionInProgressError,
    InvalidImageError,
    SessionStateError,
)
from brickworks.core.generative import GeminiClient
from brickworks.core.pipeline import BlueprintPipeline
from brickworks.core.prompts import SIZE_TIERS
from brickworks.core.session import SessionOrchestrator
from brickworks.core.validation import build_parts_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application lifecycle.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create shared clients on startup and close them on shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    # --- Startup -----------------------------------------------------------
    app.state.http_client = httpx.AsyncClient(timeout=config.pricing_timeout)
    app.state.validator = build_parts_validator(config, app.state.http_client)
    app.state.pipeline = None
    app.state.sessions = SessionRegistry(config.max_sessions, config.session_ttl_seconds)
    logger.info("Brick-Works API started (generation pipeline is built on first use).")

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    app.state.sessions.clear()
    await app.state.http_client.aclose()
    logger.info("Brick-Works API stopped.")


app = FastAPI(
    title="Brick-Works",
    description="Turn a photo into a brick model rendering and a priced parts list.",
    version=__version__,
    lifespan=lifespan,
)

# Allow cross-origin requests so a frontend can be served from a different
# port during development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Helpers.
# ---------------------------------------------------------------------------


def _get_pipeline(request: Request) -> BlueprintPipeline:
    """Return the shared pipeline, building it on first use.

    Raises:
        HTTPException: 503 if the generative service is not configured.
    """
    state = request.app.state
    if state.pipeline is None:
        try:
            state.pipeline = BlueprintPipeline(GeminiClient(config))
        except ConfigurationError as e:
            logger.error(f"Cannot build generation pipeline: {e}")
            raise HTTPException(status_code=503, detail=str(e)) from e
    return state.pipeline


def _get_session(request: Request, session_id: str) -> SessionOrchestrator:
    session = request.app.state.sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _http_error(exc: BrickworksError) -> HTTPException:
    """Map a session error to the matching HTTP status."""
    if isinstance(exc, InvalidImageError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, (SessionStateError, ConversionInProgressError)):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/api/config")
async def get_config() -> dict:
    """Return the size tiers and defaults for the frontend.

    Returns:
        Dictionary with keys ``version``, ``default_size``, ``demo_images``
        (how many demo images can be selected) and ``sizes`` (one entry per
        size with its piece-count range and detail level).
    """
    return {
        "version": __version__,
        "default_size": config.default_size.value,
        "demo_images": len(config.demo_image_urls),
        "sizes": [
            {
                "size": tier.size.value,
                "label": tier.label,
                "min_pieces": tier.min_pieces,
                "max_pieces": tier.max_pieces,
                "detail": tier.detail,
            }
            for tier in SIZE_TIERS.values()
        ],
    }


@app.post("/api/sessions", status_code=201)
async def create_session(request: Request) -> SessionSnapshot:
    """Create an empty conversion session.

    Raises:
        HTTPException: 503 if the generative service is not configured.
    """
    pipeline = _get_pipeline(request)
    session = SessionOrchestrator(pipeline, request.app.state.validator, config)
    session_id = request.app.state.sessions.add(session)
    logger.info(f"Created session {session_id}")
    return SessionSnapshot.from_session(session_id, session)


@app.get("/api/sessions/{session_id}")
async def get_session(request: Request, session_id: str) -> SessionSnapshot:
    """Return the current state of a session.

    Raises:
        HTTPException: 404 if the session does not exist.
    """
    return SessionSnapshot.from_session(session_id, _get_session(request, session_id))


@app.delete("/api/sessions/{session_id}")
async def delete_session(request: Request, session_id: str) -> dict:
    """Discard a session and everything it holds.

    Raises:
        HTTPException: 404 if the session does not exist.
    """
    _get_session(request, session_id)
    request.app.state.sessions.discard(session_id)
    return {"success": True, "deleted": session_id}


@app.post("/api/sessions/{session_id}/image")
async def upload_image(
    request: Request, session_id: str, file: UploadFile = File(...)
) -> SessionSnapshot:
    """Select the uploaded file as the session's source image.

    Raises:
        HTTPException: 400 if the file is not an acceptable image, 409 if the
            session already has results or is busy.
    """
    session = _get_session(request, session_id)
    data = await file.read()
    try:
        session.select_image(data, file.content_type, filename=file.filename)
    except BrickworksError as e:
        raise _http_error(e) from e
    return SessionSnapshot.from_session(session_id, session)


@app.post("/api/sessions/{session_id}/demo")
async def load_demo_image(
    request: Request, session_id: str, req: DemoImageRequest
) -> SessionSnapshot:
    """Download one of the configured demo images and select it.

    Only URLs listed in ``BRICKWORKS_DEMO_IMAGE_URLS`` are ever fetched.  A
    failed download is reported in the snapshot's ``error`` field.

    Raises:
        HTTPException: 400 if no demo image exists at the requested index.
    """
    session = _get_session(request, session_id)
    if req.index >= len(config.demo_image_urls):
        raise HTTPException(status_code=400, detail=f"No demo image at index {req.index}")
    url = config.demo_image_urls[req.index]
    try:
        await session.select_demo_image(url, client=request.app.state.http_client)
    except BrickworksError as e:
        raise _http_error(e) from e
    return SessionSnapshot.from_session(session_id, session)


@app.delete("/api/sessions/{session_id}/image")
async def clear_image(request: Request, session_id: str) -> SessionSnapshot:
    """Drop the selected image before conversion."""
    session = _get_session(request, session_id)
    try:
        session.clear_image()
    except BrickworksError as e:
        raise _http_error(e) from e
    return SessionSnapshot.from_session(session_id, session)


@app.post("/api/sessions/{session_id}/size")
async def select_size(request: Request, session_id: str, req: SizeRequest) -> SessionSnapshot:
    """Choose the size used by the first conversion."""
    session = _get_session(request, session_id)
    try:
        session.select_size(req.size)
    except BrickworksError as e:
        raise _http_error(e) from e
    return SessionSnapshot.from_session(session_id, session)


@app.post("/api/sessions/{session_id}/convert")
async def convert(request: Request, session_id: str) -> SessionSnapshot:
    """Run the first conversion and wait for it to finish.

    A failed conversion is not an HTTP error: the returned snapshot is in
    the ``Error`` state and carries the message.

    Raises:
        HTTPException: 409 if no image is selected or a conversion is running.
    """
    session = _get_session(request, session_id)
    try:
        await session.convert()
    except BrickworksError as e:
        raise _http_error(e) from e
    return SessionSnapshot.from_session(session_id, session)


@app.post("/api/sessions/{session_id}/resize")
async def resize(request: Request, session_id: str, req: SizeRequest) -> SessionSnapshot:
    """Generate another version of the source image at a new size.

    Sizes that are already present are skipped.  A failed resize is reported
    in ``resize_error`` and leaves existing versions in place.

    Raises:
        HTTPException: 409 if the session is not ready or is busy.
    """
    session = _get_session(request, session_id)
    try:
        await session.resize(req.size)
    except BrickworksError as e:
        raise _http_error(e) from e
    return SessionSnapshot.from_session(session_id, session)


@app.post("/api/sessions/{session_id}/select")
async def select_version(
    request: Request, session_id: str, req: SelectRequest
) -> SessionSnapshot:
    """Display a different stored version.

    Raises:
        HTTPException: 400 if the index is out of range.
    """
    session = _get_session(request, session_id)
    if not session.select_version(req.index):
        raise HTTPException(status_code=400, detail=f"No version at index {req.index}")
    return SessionSnapshot.from_session(session_id, session)


@app.post("/api/sessions/{session_id}/reset")
async def reset_session(request: Request, session_id: str) -> SessionSnapshot:
    """Discard the image, all versions, errors and progress."""
    session = _get_session(request, session_id)
    session.reset()
    return SessionSnapshot.from_session(session_id, session)


@app.get("/api/sessions/{session_id}/export")
async def export_current(request: Request, session_id: str) -> dict:
    """Return the export data for the version currently displayed.

    Raises:
        HTTPException: 404 if there is no version yet, 409 if it has not
            been priced.
    """
    session = _get_session(request, session_id)
    blueprint = session.current_blueprint
    if blueprint is None:
        raise HTTPException(status_code=404, detail="No blueprint to export")
    try:
        return blueprint.export_summary()
    except BrickworksError as e:
        raise _http_error(e) from e


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from :data:`~brickworks.core.config.config`
    (``BRICKWORKS_SERVER_HOST``, ``BRICKWORKS_SERVER_PORT`` and
    ``BRICKWORKS_LOG_LEVEL``).  Defaults to ``0.0.0.0:7860``.

    This function is registered as the ``brickworks`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "brickworks.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
