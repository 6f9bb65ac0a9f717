"""
Exception classes for the offline sync core.

They subclass HTTPException so that an error reaching a route of the local
API is rendered with a meaningful status code.
"""

from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """Raised when input validation fails."""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=message
        )


class NotFoundError(HTTPException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource_type: str, resource_id):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource_type} {resource_id} not found",
        )


class StorageError(HTTPException):
    """Raised when a local durable store operation fails."""

    def __init__(self, message: str = "Local storage operation failed"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message
        )


class StorageUnavailable(StorageError):
    """Raised when the local durable store cannot be opened at all."""

    def __init__(self, message: str = "Local storage is unavailable"):
        super().__init__(message)


class NoCachedDataOffline(HTTPException):
    """Raised when a cached read is requested offline and nothing is cached."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"No cached data available offline for '{key}'",
        )


class RemoteStoreError(HTTPException):
    """Raised when a call to the remote store fails."""

    def __init__(self, table: str, message: str):
        self.table = table
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Remote store error on {table}: {message}",
        )
