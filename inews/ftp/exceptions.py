"""Exceptions for the iNews FTP client.

Custom exception hierarchy for transport, scheduling and decoding
failures. Every error keeps the exception that caused it so callers
can see the underlying ftplib or socket problem.
"""

from typing import Optional


class INewsError(Exception):
    """Base exception for all iNews client errors."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class TransportError(INewsError):
    """A transport primitive (connect, cwd, list, get) failed."""

    def __init__(
        self,
        operation: str,
        target: str = "",
        original_error: Optional[BaseException] = None
    ):
        self.operation = operation
        self.target = target
        if target:
            message = f"Failed to {operation} '{target}'"
        else:
            message = f"Failed to {operation}"
        super().__init__(message, original_error)


class TransportConnectionError(TransportError):
    """Failed to establish the control connection."""

    def __init__(self, host: str, port: int, original_error: Optional[BaseException] = None):
        self.host = host
        self.port = port
        super().__init__("connect to", f"{host}:{port}", original_error)


class AuthenticationError(TransportError):
    """The server rejected the login."""

    def __init__(self, user: str, original_error: Optional[BaseException] = None):
        self.user = user
        super().__init__("authenticate user", user, original_error)
        self.message = f"Authentication failed for user '{user}'"


class NotConnectedError(INewsError):
    """Operation attempted without an active connection."""

    def __init__(self, operation: str = "Operation"):
        message = f"{operation} requires an active connection"
        super().__init__(message)


class ConnectionCancelledError(NotConnectedError):
    """A connect in progress was abandoned because the caller disconnected."""

    def __init__(self, host: str = ""):
        self.host = host
        INewsError.__init__(self, f"Connection to {host or 'server'} was cancelled by disconnect")


class OperationTimeoutError(INewsError):
    """An attempt exceeded its deadline."""

    def __init__(
        self,
        operation: str = "Operation",
        timeout: float = 60.0,
        original_error: Optional[BaseException] = None
    ):
        self.operation = operation
        self.timeout = timeout
        message = f"{operation} timed out after {timeout:g} seconds"
        super().__init__(message, original_error)


class ProtocolDecodeError(INewsError):
    """A listing or story document could not be decoded at all."""

    def __init__(self, what: str, original_error: Optional[BaseException] = None):
        self.what = what
        message = f"Unable to decode {what}"
        super().__init__(message, original_error)


class ExhaustedRetriesError(INewsError):
    """An operation failed on every one of its allowed attempts."""

    def __init__(self, operation: str, attempts: int, last_error: Optional[BaseException] = None):
        self.operation = operation
        self.attempts = attempts
        message = f"{operation} failed after {attempts} attempt{'s' if attempts != 1 else ''}"
        super().__init__(message, last_error)

    @property
    def last_error(self) -> Optional[BaseException]:
        """The error raised by the final attempt."""
        return self.original_error
