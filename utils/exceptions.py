class ValidationError(ValueError):
    """Custom exception for validation errors."""

    pass


class FontError(RuntimeError):
    """Custom exception for font loading and resource failures."""

    pass


class RenderingError(RuntimeError):
    """Custom exception for text rendering and drawing failures."""

    pass


class ResourceUnavailableError(RenderingError):
    """Raised when a raster surface or drawing context cannot be acquired."""

    pass


class ImageProcessingError(Exception):
    """Custom exception for image operations failures."""

    pass


class DecodeError(ImageProcessingError):
    """Raised when a source image cannot be decoded."""

    pass


class ExportError(RuntimeError):
    """Custom exception for export failures surfaced to the user."""

    pass
