"""Exception hierarchy for Playsync."""


class PlaysyncError(Exception):
    """Base class for all Playsync errors."""


class ConfigError(PlaysyncError):
    """Configuration value is missing or invalid."""


class EventValidationError(PlaysyncError):
    """A sync event payload is malformed."""


class TransportError(PlaysyncError):
    """Sending over the relay transport failed."""


class ProviderError(PlaysyncError):
    """A playback provider call failed.

    All provider failures are treated as transient by the agents: the current
    poll or event is skipped and the next one starts from fresh state.
    """


class ProviderAuthError(ProviderError):
    """Credentials were rejected or could not be refreshed."""


class ProviderRateLimitError(ProviderError):
    """The provider asked us to slow down."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class ProviderNetworkError(ProviderError):
    """The provider could not be reached."""
