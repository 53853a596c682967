"""Group-sync exceptions for error handling.

Soft outcomes (missing group, duplicate membership) are reported as booleans
by the store. Only hard failures raise.
"""


class GroupSyncError(Exception):
    """Base exception for all group sync operations."""
    pass


class StorageError(GroupSyncError):
    """Failure in the relational store.

    Attributes:
        operation: Store operation that failed (e.g. "add_to_group")
        message: Error message from the database driver
    """

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"[storage] {operation}: {message}")


class DelegateError(GroupSyncError):
    """Failure reported by an external delegate (remote backend, host manager).

    Attributes:
        delegate: Name of the delegate that failed
        message: Error message
    """

    def __init__(self, delegate: str, message: str):
        self.delegate = delegate
        self.message = message
        super().__init__(f"[{delegate}] {message}")


class GroupNotFoundError(GroupSyncError):
    """Group does not exist in the host group manager."""
    pass


class RegistryError(GroupSyncError):
    """Backend registry was attached twice or is malformed."""
    pass
