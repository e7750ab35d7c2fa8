import typing


class ProgressionError(Exception):
    """Base class for errors raised by the progression engine."""

    def __init__(self, message: str, details: typing.Optional[typing.Any] = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class InvalidArgumentError(ProgressionError, ValueError):
    """Malformed input: out-of-range score, empty question set, bad level step. Never retried."""


class NotFoundError(ProgressionError):
    """Reference to an unknown user, unit or assessment."""


class ConflictError(ProgressionError):
    """A concurrent write for the same award key won the race."""


class UpstreamUnavailableError(ProgressionError):
    """The data store failed. Callers decide whether to retry."""


class PermissionDeniedError(ProgressionError):
    """The caller is known but not allowed to see the requested data."""
