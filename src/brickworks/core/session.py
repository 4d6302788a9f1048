"""Session orchestration for one user's conversion workflow.

A session owns the uploaded source image and the build store, and moves
through a small state machine::

    Idle ──select image──▶ ImageSelected ──convert──▶ Converting ──▶ Ready
      ▲                        │                          │            │ resize
      │                        └──clear──▶ Idle           └──▶ Error   ▼
      └────────────────────────── reset (from any state) ────────── Ready

Guarantees
----------
- Only one conversion or resize runs at a time; a second request while one
  is in flight raises :class:`ConversionInProgressError`.
- ``Error`` always carries a human-readable message.
- Leaving ``Converting`` (or finishing a resize) clears the progress message.
- A failed resize is reported in ``resize_error``; the session stays
  ``Ready`` and earlier versions are untouched.
- ``reset()`` works in any state.  A run still in flight when the session is
  reset finishes in the background and its result is discarded.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import httpx

from .build_store import BuildStore
from .config import BrickworksConfig
from .errors import ConversionInProgressError, InvalidImageError, SessionStateError
from .image_io import ensure_image, prepare_payload
from .models import Blueprint, BuildSize
from .pipeline import BlueprintPipeline
from .validation import PartsValidator

logger = logging.getLogger(__name__)

DEMO_IMAGE_ERROR = "Could not load the demo image. Please check your network connection."
UNKNOWN_ERROR = "An unknown error occurred. Please try again."


class SessionState(str, Enum):
    IDLE = "Idle"
    IMAGE_SELECTED = "ImageSelected"
    CONVERTING = "Converting"
    READY = "Ready"
    ERROR = "Error"


@dataclass(frozen=True)
class SourceImage:
    """The image a session was started from."""

    data: bytes
    mime_type: str
    filename: str | None = None


def _error_message(exc: Exception, fallback: str = UNKNOWN_ERROR) -> str:
    message = str(exc).strip()
    return message or fallback


class SessionOrchestrator:
    """Coordinates upload, generation, validation and version management.

    Args:
        pipeline: Blueprint generation pipeline.
        validator: Parts validator used after every generation.
        config: Application configuration (upload limits, default size).
        on_progress: Optional callable that receives every progress message.
    """

    def __init__(
        self,
        pipeline: BlueprintPipeline,
        validator: PartsValidator,
        config: BrickworksConfig,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.validator = validator
        self.config = config
        self.on_progress = on_progress

        self.state = SessionState.IDLE
        self.image: SourceImage | None = None
        self.size: BuildSize = config.default_size
        self.store = BuildStore()
        self.error: str | None = None
        self.progress_message: str = ""
        self.resize_error: str | None = None
        self.is_resizing = False

        self._busy = False
        self._epoch = 0

    def __repr__(self) -> str:
        return (
            f"SessionOrchestrator(state={self.state.value}, "
            f"versions={len(self.store)}, busy={self._busy})"
        )

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def current_blueprint(self) -> Blueprint | None:
        return self.store.current()

    # ------------------------------------------------------------------
    # Image selection
    # ------------------------------------------------------------------

    def select_image(
        self, data: bytes, mime_type: str | None, filename: str | None = None
    ) -> None:
        """Choose the source image.

        Raises:
            InvalidImageError: If the file is not an acceptable image.  The
                session is left as it was.
            SessionStateError: If the session already has blueprints.
            ConversionInProgressError: If a conversion is running.
        """
        self._ensure_idle_for_selection()
        effective_mime = ensure_image(
            data,
            mime_type,
            allowed_mime_types=self.config.allowed_mime_types,
            max_bytes=self.config.max_upload_bytes,
        )
        self.image = SourceImage(data=data, mime_type=effective_mime, filename=filename)
        self.error = None
        self.state = SessionState.IMAGE_SELECTED
        logger.info(
            f"Image selected: {filename or '<unnamed>'} ({effective_mime}, {len(data)} bytes)"
        )

    async def select_demo_image(self, url: str, client: httpx.AsyncClient | None = None) -> bool:
        """Fetch an image from ``url`` and select it.

        A failed download is reported through ``error`` rather than raised.

        Returns:
            ``True`` if the demo image was selected.
        """
        self._ensure_idle_for_selection()
        try:
            if client is None:
                async with httpx.AsyncClient(timeout=15.0, follow_redirects=True) as own_client:
                    response = await own_client.get(url)
            else:
                response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to load demo image from {url}: {e}")
            self.error = DEMO_IMAGE_ERROR
            return False

        mime_type = response.headers.get("content-type", "").split(";")[0].strip() or None
        filename = url.rstrip("/").rsplit("/", 1)[-1] or "demo-image"
        try:
            self.select_image(response.content, mime_type, filename=filename)
        except InvalidImageError as e:
            logger.error(f"Demo image is not usable: {e}")
            self.error = DEMO_IMAGE_ERROR
            return False
        return True

    def clear_image(self) -> None:
        """Drop the selected image before any conversion has started."""
        if self.state != SessionState.IMAGE_SELECTED:
            raise SessionStateError("There is no pending image selection to clear.")
        self.image = None
        self.state = SessionState.IDLE

    def select_size(self, size: BuildSize | str) -> None:
        """Choose the size for the first conversion."""
        if self.state not in (SessionState.IDLE, SessionState.IMAGE_SELECTED):
            raise SessionStateError("The initial size can only be changed before converting.")
        self.size = BuildSize(size)

    def _ensure_idle_for_selection(self) -> None:
        if self._busy:
            raise ConversionInProgressError("Please wait for the current conversion to finish.")
        if self.state == SessionState.READY:
            raise SessionStateError("Reset the session before selecting a new image.")

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def _build(self, image: SourceImage, size: BuildSize, epoch: int) -> Blueprint:
        def report(message: str) -> None:
            # Runs that outlive a reset stay silent.
            if epoch != self._epoch:
                return
            self.progress_message = message
            if self.on_progress is not None:
                self.on_progress(message)

        report("Preparing image...")
        data, mime_type = prepare_payload(image.data, image.mime_type)

        blueprint = await self.pipeline.generate(data, mime_type, size, progress=report)

        report("Validating parts with BrickLink...")
        validated = await self.validator.validate(blueprint.parts_list)
        report("Complete!")
        return blueprint.with_validation(validated)

    async def convert(self) -> Blueprint | None:
        """Run the first conversion for the selected image and size.

        Returns:
            The validated blueprint, or ``None`` if the conversion failed (the
            session is then in ``Error`` with a message) or the session was
            reset while it ran.

        Raises:
            ConversionInProgressError: If a conversion or resize is running.
            SessionStateError: If no image is selected.
        """
        if self._busy:
            raise ConversionInProgressError("A conversion is already running.")
        if self.state != SessionState.IMAGE_SELECTED or self.image is None:
            raise SessionStateError("Select an image before converting.")

        self._busy = True
        epoch = self._epoch
        size = self.size
        self.state = SessionState.CONVERTING
        self.error = None
        logger.info(f"Starting {size.value} conversion")

        try:
            blueprint = await self._build(self.image, size, epoch)
            if epoch != self._epoch:
                logger.info("Session was reset during conversion, discarding result")
                return None
            self.store.select(self.store.append(blueprint))
            self.state = SessionState.READY
            logger.info(f"Conversion complete: {blueprint.title!r}")
            return blueprint
        except Exception as e:
            logger.error(f"Conversion failed: {e}", exc_info=True)
            if epoch == self._epoch:
                self.error = _error_message(e)
                self.state = SessionState.ERROR
            return None
        finally:
            self._busy = False
            if epoch == self._epoch:
                self.progress_message = ""

    async def resize(self, size: BuildSize | str) -> Blueprint | None:
        """Generate another version of the same source image at ``size``.

        A size that is already present is not generated again.

        Returns:
            The new blueprint, or ``None`` if the size was already present,
            the resize failed (see ``resize_error``) or the session was reset.

        Raises:
            ConversionInProgressError: If a conversion or resize is running.
            SessionStateError: If the session is not ``Ready``.
        """
        size = BuildSize(size)
        if self._busy:
            raise ConversionInProgressError("A conversion is already running.")
        if self.state != SessionState.READY or self.image is None:
            raise SessionStateError("Convert an image before creating other sizes.")
        if size in self.store.sizes_present():
            logger.info(f"{size.value} version already generated, skipping")
            return None

        self._busy = True
        self.is_resizing = True
        epoch = self._epoch
        self.resize_error = None
        logger.info(f"Starting resize to {size.value}")

        try:
            blueprint = await self._build(self.image, size, epoch)
            if epoch != self._epoch:
                logger.info("Session was reset during resize, discarding result")
                return None
            self.store.select(self.store.append(blueprint))
            return blueprint
        except Exception as e:
            logger.error(f"Resize to {size.value} failed: {e}", exc_info=True)
            if epoch == self._epoch:
                self.resize_error = _error_message(e, "An unknown error occurred during resize.")
            return None
        finally:
            self._busy = False
            if epoch == self._epoch:
                self.is_resizing = False
                self.progress_message = ""

    def select_version(self, index: int) -> bool:
        """Show a different stored version.  Out-of-range indexes are ignored."""
        return self.store.select(index)

    def reset(self) -> None:
        """Discard the image, all versions, errors and progress."""
        logger.info("Resetting session")
        self._epoch += 1
        self.state = SessionState.IDLE
        self.image = None
        self.size = self.config.default_size
        self.store.clear()
        self.error = None
        self.progress_message = ""
        self.resize_error = None
        self.is_resizing = False
