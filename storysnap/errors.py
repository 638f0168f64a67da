"""Error taxonomy for snapshot runs."""

from __future__ import annotations

from pathlib import Path


class StorysnapError(Exception):
    """Base class for all storysnap errors."""


class SetupError(StorysnapError):
    """Fatal: invalid case declarations, pool launch or server startup failure."""


class CaptureError(StorysnapError):
    """Navigation, selector wait or screenshot failure for one case."""

    def __init__(self, message: str, instance_id: int | None = None):
        super().__init__(message)
        self.instance_id = instance_id



class BaselineMissingError(StorysnapError):
    """The baseline image for a case does not exist yet."""

    def __init__(self, path: Path):
        super().__init__(f"baseline not found: {path}")
        self.path = path


class DiffError(StorysnapError):
    """Decode, resize, hash or diff-artifact write failure for one case."""
