"""
Custom exceptions for log storage.

All storage adapters raise these exceptions for consistent
error handling across backends.
"""


class LogStorageError(Exception):
    """Base exception for all log storage errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class LogNotFoundError(LogStorageError):
    """Raised when a structured operation targets a log that does not exist."""

    def __init__(self, log_name: str, tenant_id: str | None = None):
        details = {"log_name": log_name}
        if tenant_id:
            details["tenant_id"] = tenant_id
        super().__init__(f"Log {log_name} not found", details)
        self.log_name = log_name
        self.tenant_id = tenant_id


class LogExistsError(LogStorageError):
    """Raised when creating a log whose name is already taken in the tenant."""

    def __init__(self, log_name: str, tenant_id: str | None = None):
        details = {"log_name": log_name}
        if tenant_id:
            details["tenant_id"] = tenant_id
        super().__init__(f"Log already exists: {log_name}", details)
        self.log_name = log_name
        self.tenant_id = tenant_id


class StorageIOError(LogStorageError):
    """Raised when a storage I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class StorageConnectionError(LogStorageError):
    """Raised when connection to the backing store fails.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class ValidationError(LogStorageError):
    """Raised when caller-supplied options fail validation."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class RetentionPolicyError(LogStorageError):
    """Raised when a retention policy violates configured limits."""

    def __init__(self, tenant_id: str, reason: str):
        super().__init__(
            f"Invalid retention policy for tenant {tenant_id}: {reason}",
            {"tenant_id": tenant_id, "reason": reason},
        )
        self.tenant_id = tenant_id
        self.reason = reason
