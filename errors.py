"""
Error taxonomy for the asset lifecycle managers.

Managers raise these; the HTTP layer maps each class to a status code
through ``http_status``. Notifier failures never appear here.
"""


class AssetManagerError(Exception):
    """Base exception for all domain errors"""
    http_status = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AssetManagerError):
    """Malformed or missing required fields"""
    http_status = 400


class NotFoundError(AssetManagerError):
    """Referenced record does not exist"""
    http_status = 404


class ConflictError(AssetManagerError):
    """Status precondition violated (e.g. allocating an asset that is not available)"""
    http_status = 409


class AuthorizationError(AssetManagerError):
    """Actor lacks permission for the requested transition"""
    http_status = 403


class StateError(AssetManagerError):
    """Operation invalid in the record's current lifecycle state"""
    http_status = 409


class TransferClosedError(AuthorizationError, StateError):
    """Raised when acting on a transfer that is already completed or rejected"""
    http_status = 403


class StorageError(AssetManagerError):
    """Unexpected failure from the data store"""
    http_status = 500
