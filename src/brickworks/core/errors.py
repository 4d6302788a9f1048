"""Exception types for Brick-Works.

Every exception raised to a caller carries a message that can be shown to a
user as-is.  Degraded outcomes (fallback blueprints, estimated prices) are
ordinary results and never appear here.
"""


class BrickworksError(Exception):
    """Base class for user-facing Brick-Works errors."""

    pass


class ConfigurationError(BrickworksError):
    """Required configuration (such as service credentials) is missing."""

    pass


class ImageGenerationError(BrickworksError):
    """The image synthesis stage returned no image."""

    pass


class ImageEncodingError(BrickworksError):
    """An image could not be decoded or encoded for transport."""

    pass


class InvalidImageError(BrickworksError):
    """The selected file is not an acceptable image.

    Raised before anything enters the pipeline.
    """

    pass


class ConversionInProgressError(BrickworksError):
    """A conversion or resize is already running for the session."""

    pass


class SessionStateError(BrickworksError):
    """The requested operation is not allowed in the session's current state."""

    pass


class PricingLookupError(Exception):
    """A single pricing lookup failed.

    The parts validator catches this per part and degrades that part to an
    estimate, so it never reaches callers of ``PartsValidator.validate``.
    """

    pass
