"""Exception types shared across the platform clients, webhook layer and pipeline."""

from typing import Optional


class StreamAlertError(RuntimeError):
    """Base class for errors raised by streamalert."""


class ConfigurationError(StreamAlertError):
    """Raised when required credentials or settings are missing."""


class AuthenticationError(StreamAlertError):
    """Raised when a token cannot be fetched or refreshed."""


class ApiError(StreamAlertError):
    """Raised for a non-2xx response from a platform REST API."""

    def __init__(self, platform: str, status_code: int, body: str):
        self.platform = platform
        self.status_code = status_code
        self.body = body
        super().__init__(f"{platform} API Error: {status_code} - {body}")


class StreamUnavailableError(StreamAlertError):
    """Raised when a stream is not live yet or its broadcaster cannot be found."""

    def __init__(self, message: str, broadcaster_id: Optional[str] = None):
        self.broadcaster_id = broadcaster_id
        super().__init__(message)
