"""Playback-specific exceptions for error handling."""

from typing import Optional


class PlaybackError(Exception):
    """Base exception for playback operations."""

    pass


class NoPlaybackMethodError(PlaybackError):
    """Raised when neither backend can play a track."""

    def __init__(self, track=None, message: Optional[str] = None):
        self.track = track
        super().__init__(message or "No playback method available for this track")


class UnsupportedOperationError(PlaybackError):
    """Raised when a backend does not implement an operation (e.g. preview skip)."""

    def __init__(self, operation: str, backend: str = "preview"):
        self.operation = operation
        self.backend = backend
        super().__init__(f"{operation} is not supported by the {backend} backend")


class DeviceUnavailableError(PlaybackError):
    """Raised when a remote command is issued while no device is ready."""

    pass


class PreviewUnavailableError(PlaybackError):
    """Raised when a preview clip cannot be played (no URL or no audio output)."""

    pass


class RemoteCommandError(PlaybackError):
    """Raised when a command against the remote device fails."""

    def __init__(self, command: str, status_code: Optional[int] = None, message: Optional[str] = None):
        self.command = command
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code else ""
        super().__init__(message or f"Remote command '{command}' failed{detail}")
