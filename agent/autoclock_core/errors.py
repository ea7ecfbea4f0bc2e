"""
Error kinds raised by the agent core.

Remote and token failures are recovered up to the single refresh/retry in
token_manager; past that they surface as one of these.
"""


class AppError(Exception):
    """Base class for every error the agent raises on purpose."""


class AuthenticationError(AppError):
    """No credential, an invalid credential, or a failed token refresh."""


class ValidationError(AppError):
    """Bad input (schedule format, storage key) or a refused clock-out."""

    def __init__(self, field, message):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class RemoteError(AppError):
    """Remote API failure. ``token_invalid`` is set when the server rejected the token."""

    def __init__(self, message, status_code=None, token_invalid=False):
        super().__init__(message)
        self.status_code = status_code
        self.token_invalid = token_invalid


class SchedulingError(AppError):
    """A computed fire time could not be turned into a real instant."""


class StorageError(AppError):
    """Credential store could not read or write."""
