"""Central DI module for datacol.

Wires the components of one CLI invocation:
- Store (singleton, opened on first use; the caller closes it)
- StackRegistry and the session Client
- Provider backend selected by settings, bound to the active stack
- StackOrchestrator, ExecBridge
- ControllerClient (connected lazily, only by commands that need it)
"""

from __future__ import annotations

from contextlib import suppress

from injector import Binder, Module, provider, singleton

from . import __version__
from .bridge import ExecBridge
from .config import Settings
from .exceptions import NotInitializedError
from .gateway import ControllerClient, connect
from .providers import Provider, create_provider
from .registry import Client, StackRegistry
from .stack import StackOrchestrator
from .store import Store


class DatacolModule(Module):
    """Core module providing shared dependencies.

    Usage:
        injector = Injector([DatacolModule(load_settings())])
        orchestrator = injector.get(StackOrchestrator)
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def configure(self, binder: Binder) -> None:
        binder.bind(Settings, to=self._settings)

    @singleton
    @provider
    def provide_store(self, settings: Settings) -> Store:
        return Store(settings.root).open()

    @singleton
    @provider
    def provide_registry(self, store: Store) -> StackRegistry:
        return StackRegistry(store)

    @singleton
    @provider
    def provide_client(self, settings: Settings, registry: StackRegistry) -> Client:
        client = Client(version=__version__, registry=registry)
        name = settings.stack or registry.current_stack_name()
        if name:
            # Commands like init run before any stack exists.
            with suppress(NotInitializedError):
                client.set_stack(name)
        return client

    @singleton
    @provider
    def provide_provider(self, settings: Settings, client: Client) -> Provider:
        return create_provider(settings, client.stack)

    @singleton
    @provider
    def provide_orchestrator(
        self, settings: Settings, backend: Provider, registry: StackRegistry,
    ) -> StackOrchestrator:
        return StackOrchestrator(backend, registry, settings.paths)

    @singleton
    @provider
    def provide_bridge(self, settings: Settings, backend: Provider) -> ExecBridge:
        return ExecBridge(backend, settings.paths, settings.kubectl)

    @singleton
    @provider
    def provide_controller(self, settings: Settings, registry: StackRegistry) -> ControllerClient:
        auth = registry.get_auth(settings.stack)
        return connect(auth, settings.controller_port)


__all__ = [
    "DatacolModule",
]
