"""Custom exceptions for the agent sync engine."""


class SyncError(Exception):
    """Base exception for sync-related errors."""
    pass


class MalformedEvent(SyncError):
    """Exception raised when a pushed event payload is missing or has invalid fields."""
    pass


class UnknownSelectionTarget(SyncError):
    """Exception raised when selecting a client that is not in the roster."""

    def __init__(self, client_id: str):
        super().__init__(f"Client {client_id!r} is not in the roster")
        self.client_id = client_id


class FetchFailure(SyncError):
    """Exception raised when the server reports a failed conversation fetch."""
    pass


class FetchTimeout(FetchFailure):
    """Exception raised when a conversation fetch is not acknowledged in time."""
    pass


class SendFailure(SyncError):
    """Exception raised when the transport refuses an outbound message."""
    pass


class TransportError(SyncError):
    """Exception raised for transport-level failures."""
    pass
