"""Pydantic request and response models for the Brick-Works API.

Models
------
SizeRequest
    Payload for ``POST /api/sessions/{id}/size`` and ``/resize``.
SelectRequest
    Payload for ``POST /api/sessions/{id}/select``.
DemoImageRequest
    Payload for ``POST /api/sessions/{id}/demo``.
SessionSnapshot
    Response body describing a session's full state.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from brickworks.core.models import Blueprint, BuildSize
from brickworks.core.session import SessionOrchestrator, SessionState


class SizeRequest(BaseModel):
    """Request body selecting a build size.

    Attributes:
        size: One of ``"Micro"``, ``"Medium"`` or ``"Large"``.
    """

    size: BuildSize = Field(
        ...,
        description="Target build size: Micro, Medium or Large.",
    )


class SelectRequest(BaseModel):
    """Request body for switching the displayed version.

    Attributes:
        index: Zero-based position of the version in generation order.
    """

    index: int = Field(
        ...,
        description="Zero-based index of the version to display.",
    )


class DemoImageRequest(BaseModel):
    """Request body for loading a demo image.

    Demo images are configured on the server; a client cannot supply a URL.

    Attributes:
        index: Position of the demo image in the configured list.
    """

    model_config = ConfigDict(extra="forbid")

    index: int = Field(
        default=0,
        ge=0,
        description="Index of the configured demo image to load.",
    )


class SessionSnapshot(BaseModel):
    """Everything a frontend needs to render one session.

    Attributes:
        session_id: Session identifier.
        state: State machine state.
        size: Size selected for the first conversion.
        has_image: Whether a source image is selected.
        progress: Latest progress message, empty when nothing is running.
        error: Message of the fatal failure when ``state`` is ``Error``.
        is_resizing: Whether another version is being generated.
        resize_error: Message of the last failed resize.
        current_index: Index of the displayed version, if any.
        sizes_present: Sizes already generated.
        blueprints: All versions in generation order.
    """

    session_id: str
    state: SessionState
    size: BuildSize
    has_image: bool
    progress: str = ""
    error: str | None = None
    is_resizing: bool = False
    resize_error: str | None = None
    current_index: int | None = None
    sizes_present: list[BuildSize] = Field(default_factory=list)
    blueprints: list[Blueprint] = Field(default_factory=list)

    @classmethod
    def from_session(cls, session_id: str, session: SessionOrchestrator) -> SessionSnapshot:
        order = list(BuildSize)
        return cls(
            session_id=session_id,
            state=session.state,
            size=session.size,
            has_image=session.image is not None,
            progress=session.progress_message,
            error=session.error,
            is_resizing=session.is_resizing,
            resize_error=session.resize_error,
            current_index=session.store.current_index,
            sizes_present=sorted(session.store.sizes_present(), key=order.index),
            blueprints=list(session.store),
        )
