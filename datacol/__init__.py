"""datacol: create and operate application stacks on your own cloud account.

Example:
    from injector import Injector

    from datacol.config import load_settings
    from datacol.models import InitOptions
    from datacol.module import DatacolModule
    from datacol.stack import StackOrchestrator

    injector = Injector([DatacolModule(load_settings())])
    orchestrator = injector.get(StackOrchestrator)
    result = orchestrator.init(InitOptions(name="demo"), confirm=lambda request: True)
"""

__version__ = "0.1.0"

from .exceptions import (
    AlreadyLockedError,
    ConfigurationError,
    CredentialError,
    DatacolError,
    EncodingError,
    InitAbortedError,
    NotInitializedError,
    ProjectResolutionError,
    ProviderError,
    RemoteCallError,
    StackNotFoundError,
    StoreIOError,
    SubprocessError,
    WorkflowStateError,
)
from .models import Auth, ExecResult, InitOptions, InitResult, Stack, TeardownResult

__all__ = [
    "__version__",
    # Errors
    "DatacolError",
    "AlreadyLockedError",
    "ConfigurationError",
    "CredentialError",
    "EncodingError",
    "InitAbortedError",
    "NotInitializedError",
    "ProjectResolutionError",
    "ProviderError",
    "RemoteCallError",
    "StackNotFoundError",
    "StoreIOError",
    "SubprocessError",
    "WorkflowStateError",
    # Records
    "Auth",
    "ExecResult",
    "InitOptions",
    "InitResult",
    "Stack",
    "TeardownResult",
]
