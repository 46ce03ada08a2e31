from __future__ import annotations

class TakeoutFixerError(Exception):
    """Base exception for the application."""

class UserCancelledError(TakeoutFixerError):
    """Raised when user cancels an in-progress batch."""

class ExtractionError(TakeoutFixerError):
    """Raised when the external archive extractor is missing or fails."""

class FormatError(TakeoutFixerError):
    """Raised when a sidecar JSON file does not match the expected schema."""

class EmbedError(TakeoutFixerError):
    """Raised when metadata cannot be embedded into a media file."""

class ExifToolError(EmbedError):
    """Raised when ExifTool invocation fails."""
