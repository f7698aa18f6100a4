# shellcue/exceptions.py
"""
Exception types raised by shellcue components.
"""


class ShellCueError(Exception):
    """Base class for shellcue errors."""
    pass


class ConfigurationError(ShellCueError):
    """Raised when a component is constructed with missing or invalid configuration."""
    pass


class StorageError(ShellCueError):
    """
    Raised when a storage backend cannot complete an operation.

    Attributes:
        retryable: True when the failure is transient (e.g. lock contention)
    """

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable
