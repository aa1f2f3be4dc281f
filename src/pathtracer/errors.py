"""Exception hierarchy for scene loading and rendering.

Configuration problems abort loading with a ConfigurationError naming the
offending scene object. Missing or corrupt external data (meshes, measured
BRDF tables) surfaces as a ResourceError, which is also an OSError so callers
handling I/O failures catch it naturally.
"""


class RenderError(Exception):
    """Base class for all errors raised by the renderer."""


class ConfigurationError(RenderError, ValueError):
    """Invalid scene document content.

    Attributes:
        object_name: Name of the scene object, material or section the
            error refers to, or None when not attributable.
    """

    def __init__(self, message: str, object_name: str | None = None) -> None:
        self.object_name = object_name
        if object_name:
            message = f"{object_name}: {message}"
        super().__init__(message)


class ResourceError(RenderError, OSError):
    """External geometry or BRDF data is missing or malformed."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        if path:
            message = f"{message} ({path})"
        super().__init__(message)
