# errors.py


class RenderError(Exception):
    """Base class for every failure of a field render."""


class RampLoadError(RenderError):
    """Heatmap source missing, unreadable, empty, or gamma invalid."""


class FieldError(RenderError):
    """
    The field function raised. Only the first failure is kept; the
    original exception is available as __cause__ and `original`.
    """

    def __init__(self, x: int, y: int, original: BaseException):
        super().__init__(f"field evaluation failed at (x={x}, y={y}): {original!r}")
        self.x = x
        self.y = y
        self.original = original


class RenderCancelled(RenderError):
    """Evaluation stopped because the cancel token was set."""


class OutputError(RenderError):
    """Destination file could not be created or written."""


class EncodeError(RenderError):
    """Image encoding failed."""
