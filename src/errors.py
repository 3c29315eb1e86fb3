"""
Relay error taxonomy.

Every failure the relay controller reports to a caller is a RelayError
carrying the HTTP status the API layer should answer with.
"""


class RelayError(Exception):
    """Base class for errors surfaced to relay callers."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RelayValidationError(RelayError):
    """A required start field is missing."""

    status_code = 400


class StreamNotLiveError(RelayError):
    """The source channel has no current broadcast."""

    status_code = 404


class UpstreamProtocolError(RelayError):
    """The Twitch token or manifest exchange was rejected or malformed."""

    status_code = 500


class RelayAlreadyActiveError(RelayError):
    status_code = 409


class NoActiveRelayError(RelayError):
    status_code = 404


class RelaySpawnError(RelayError):
    """The ffmpeg process could not be launched."""

    status_code = 500
