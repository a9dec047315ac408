"""Exception hierarchy for the bot API client."""

from typing import Any, Optional, Union

# Placeholder used when the remote side omits ``error_code`` / ``description``.
NOT_SET_BY_API = "Not set by API"


class BotApiError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(BotApiError, ValueError):
    """Invalid construction-time input: missing token, bad provider, bad port."""


class TransportError(BotApiError):
    """The HTTP round trip itself failed (connection refused, timeout …).

    Attributes:
        original: The underlying ``requests`` exception, when there is one.
    """

    def __init__(self, message: str, original: Optional[BaseException] = None) -> None:
        self.original = original
        super().__init__(message)


class ResponseParseError(TransportError):
    """The response body could not be decoded as JSON."""

    code: int = 0

    def __init__(self, message: str = "Failed to parse response body", original: Optional[BaseException] = None) -> None:
        super().__init__(message, original)


class RemoteAPIError(BotApiError):
    """The remote API reported failure.

    Attributes:
        code: ``error_code`` from the body, the HTTP status when the body has
            no ``ok`` field, or :data:`NOT_SET_BY_API`.
        description: ``description`` from the body, or :data:`NOT_SET_BY_API`.
        body: The parsed response body.
    """

    def __init__(
        self,
        code: Union[int, str],
        description: Optional[str] = None,
        body: Optional[Any] = None,
    ) -> None:
        self.code = code
        self.description = description
        self.body = body if body is not None else {}
        super().__init__(f"API error {code}: {description or 'Unknown error'}")


class ProviderLifecycleError(BotApiError):
    """A provider or client was started/stopped in the wrong state."""


class ProviderAlreadyStarted(ProviderLifecycleError):
    def __init__(self, message: str = "Provider already started") -> None:
        super().__init__(message)


class ProviderNotStarted(ProviderLifecycleError):
    def __init__(self, message: str = "Provider is not started yet") -> None:
        super().__init__(message)


class MissingClient(ProviderLifecycleError):
    def __init__(self, message: str = "Message provider is started without client") -> None:
        super().__init__(message)


class WebhookSetFailed(BotApiError):
    """``setWebhook`` raised or did not confirm with ``True``."""

    def __init__(self, message: str = "Failed to set webhook") -> None:
        super().__init__(message)
