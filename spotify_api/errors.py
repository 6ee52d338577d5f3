from typing import Iterable, List


class SpotifyPlayerError(Exception):
    """Base class for every error raised by the player."""


class ConfigurationError(SpotifyPlayerError):
    """Client id, client secret or redirect URI missing."""

    def __init__(self, problems: Iterable[str]):
        self.problems: List[str] = list(problems)
        super().__init__(", ".join(self.problems))


class TransportError(SpotifyPlayerError):
    """Network failure or malformed request."""


class SpotifyError(SpotifyPlayerError):
    """Non-success HTTP status returned by the remote API.

    `message` is the raw response body, never decoded.
    """

    def __init__(self, status: int, message: str):
        self.status = int(status)
        self.message = message
        super().__init__(f"spotify error (HTTP {self.status}): {self.message}")


class NoContentError(SpotifyError):
    """HTTP 204: the request succeeded but there is nothing to return."""

    def __init__(self):
        super().__init__(204, "no content available")


class AuthorizationError(SpotifyPlayerError):
    """The authorization-code grant could not be completed."""


class AuthorizationInProgressError(AuthorizationError):
    """Another authorization attempt is already in flight."""


class AuthorizationTimeoutError(AuthorizationError):
    """Deadline exceeded while waiting on the authorization server."""


class TokenRefreshError(SpotifyPlayerError):
    """The refresh-token grant returned no usable access token."""


class AccessTokenNotFoundError(SpotifyPlayerError):
    def __init__(self):
        super().__init__("access token could not be found within the provided context")


class AuthInfoNotFoundError(SpotifyPlayerError):
    def __init__(self):
        super().__init__("authorization info has not been provided through the context")


class CredentialStoreError(SpotifyPlayerError):
    """Reading or writing the local credential store failed."""


class DeadlineExceededError(TransportError):
    """A request did not complete within its timeout."""


class DecodeError(SpotifyPlayerError):
    """A success response body could not be decoded."""
