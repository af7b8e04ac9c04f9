"""
Bridge exceptions for InkBridge.

Defines the error taxonomy shared by the routing engine, the backend client
and the platform adapters.
"""


class BridgeError(Exception):
    """Base exception for bridge errors."""

    def __init__(self, message: str, adapter_key: str | None = None):
        super().__init__(message)
        self.adapter_key = adapter_key


class UnknownAdapterError(BridgeError):
    """No adapter is registered under the requested key."""

    def __init__(self, adapter_key: str):
        super().__init__(f"No adapter registered for '{adapter_key}'", adapter_key)


class SessionInitFailedError(BridgeError):
    """Backend session creation failed."""

    pass


class SessionExpiredError(BridgeError):
    """The backend no longer knows a previously bound session."""

    def __init__(self, message: str = "Session expired. Please retry.", session_id: str | None = None):
        super().__init__(message)
        self.session_id = session_id


class CredentialError(BridgeError):
    """Base exception for bearer-token lifecycle failures."""

    pass


class NoAccessTokenError(CredentialError):
    """No access token is configured and none can be obtained."""

    pass


class TokenRefreshFailedError(CredentialError):
    """The token endpoint rejected or failed a refresh request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ResponseTimeoutError(BridgeError):
    """Waiting for the backend response exceeded the configured ceiling."""

    def __init__(self, timeout: float):
        super().__init__(f"AI Response Timeout ({timeout:g}s)")
        self.timeout = timeout


class ContentTooLargeError(BridgeError):
    """An attachment or resource download exceeded the byte ceiling."""

    def __init__(self, size: int, max_bytes: int):
        super().__init__(f"Content too large ({size} > {max_bytes} bytes)")
        self.size = size
        self.max_bytes = max_bytes


class BackendError(BridgeError):
    """The agent backend returned an error response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BackendNotFoundError(BackendError):
    """The agent backend answered 404 for a session-scoped call."""

    pass
