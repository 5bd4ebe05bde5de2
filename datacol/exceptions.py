"""Custom exception hierarchy for datacol.

All datacol-specific exceptions inherit from DatacolError, enabling
the CLI to catch every failure with a single except clause.
"""

from __future__ import annotations


class DatacolError(Exception):
    """Base exception for all datacol errors."""


class ConfigurationError(DatacolError):
    """Raised for invalid configuration or missing required settings."""


class NotInitializedError(DatacolError):
    """Raised when no stack or auth record is available."""

    def __init__(self, message: str = "Please create a stack with: $ datacol init") -> None:
        super().__init__(message)


class StackNotFoundError(DatacolError):
    """Raised when a stack name is not present in the registry."""

    def __init__(self, name: str) -> None:
        self.stack = name
        super().__init__(f"Stack '{name}' not found")


class CredentialError(DatacolError):
    """Raised when the provider issued an empty credential."""

    def __init__(self, stack: str) -> None:
        self.stack = stack
        super().__init__(f"Invalid credentials for stack '{stack}'")


class ProjectResolutionError(DatacolError):
    """Raised when the provider returned no project id."""

    def __init__(self, stack: str) -> None:
        self.stack = stack
        super().__init__(f"Invalid project id for stack '{stack}'")


class ProviderError(DatacolError):
    """Raised when a provider backend call fails."""


class RemoteCallError(DatacolError):
    """Raised when a controller RPC fails. Carries the remote message verbatim."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"{operation}: {message}")


class StoreIOError(DatacolError):
    """Raised when the local state store cannot be read or written."""


class EncodingError(StoreIOError):
    """Raised when a value cannot be serialized for the state store."""


class AlreadyLockedError(StoreIOError):
    """Raised when another process holds the state store lock."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"State store {path} is locked by another process")


class SubprocessError(DatacolError):
    """Raised when an external tool could not be launched.

    A non-zero exit of a launched tool is a result, not this error.
    """


class WorkflowStateError(DatacolError):
    """Raised when an init workflow step runs out of order."""


class InitAbortedError(DatacolError):
    """Raised when the operator declines the init confirmation."""

    def __init__(self, stack: str) -> None:
        self.stack = stack
        super().__init__(f"Init of stack '{stack}' aborted")
