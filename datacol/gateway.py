"""Client facade over the stack controller's RPC service.

The controller is an RPyC service. Each method here is a single
request/response call except stream_app_logs, which drains a remote
iterator of log chunks into a local binary sink.

Failures are not retried: the remote message is surfaced as a
RemoteCallError tagged with the operation name.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping, Sequence
from datetime import timedelta
from typing import Any, BinaryIO, Protocol, TypeAlias, TypeVar

import rpyc  # type: ignore[import-untyped]
from loguru import logger

from .exceptions import RemoteCallError
from .models import Auth

log = logger.bind(component="gateway")

App: TypeAlias = Any
Environment: TypeAlias = Mapping[str, str]
CmdResponse: TypeAlias = Any

T = TypeVar("T")


class LogStream(Protocol):
    def __next__(self) -> bytes: ...
    def close(self) -> None: ...


class ControllerService(Protocol):
    """Operations exposed by the controller (``conn.root`` of an RPyC connection)."""

    def app_list(self) -> Sequence[App]: ...
    def app_get(self, name: str) -> App: ...
    def app_create(self, name: str) -> App: ...
    def app_delete(self, name: str) -> None: ...
    def app_restart(self, name: str) -> None: ...
    def environment_get(self, name: str) -> Environment: ...
    def environment_set(self, name: str, data: str) -> None: ...
    def log_stream(self, name: str, since: float, follow: bool) -> LogStream: ...
    def process_run(self, name: str, command: list[str]) -> CmdResponse: ...


def _call(operation: str, fn: Callable[..., T], *args: object) -> T:
    log.debug("rpc {operation}", operation=operation)
    try:
        return fn(*args)
    except Exception as e:
        raise RemoteCallError(operation, str(e)) from e


class ControllerClient:
    def __init__(self, service: ControllerService, connection: rpyc.Connection | None = None) -> None:
        self._service = service
        self._connection = connection

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    # Apps

    def get_apps(self) -> list[App]:
        return list(_call("app_list", self._service.app_list))

    def get_app(self, name: str) -> App:
        return _call("app_get", self._service.app_get, name)

    def create_app(self, name: str) -> App:
        return _call("app_create", self._service.app_create, name)

    def delete_app(self, name: str) -> None:
        _call("app_delete", self._service.app_delete, name)

    def restart_app(self, name: str) -> None:
        _call("app_restart", self._service.app_restart, name)

    # Environment

    def get_environment(self, name: str) -> Environment:
        return _call("environment_get", self._service.environment_get, name)

    def set_environment(self, name: str, data: str) -> None:
        _call("environment_set", self._service.environment_set, name, data)

    # Processes

    def run_process(self, name: str, args: list[str]) -> CmdResponse:
        return _call("process_run", self._service.process_run, name, list(args))

    # Logs

    def stream_app_logs(
        self,
        name: str,
        follow: bool,
        since: timedelta,
        sink: BinaryIO,
    ) -> None:
        """Write each log chunk to sink in arrival order.

        Returns when the controller ends the stream. Any other receive
        error is raised. The stream is closed on both paths. With
        ``follow`` the call blocks until the process is interrupted.
        """
        stream = _call("log_stream", self._service.log_stream, name, since.total_seconds(), follow)
        try:
            for chunk in _receive(stream):
                sink.write(chunk)
                sink.flush()
        finally:
            stream.close()


def _receive(stream: LogStream) -> Iterator[bytes]:
    while True:
        try:
            chunk = next(stream)
        except StopIteration:
            return
        except Exception as e:
            raise RemoteCallError("log_stream", str(e)) from e
        yield bytes(chunk)


def connect(auth: Auth, port: int) -> ControllerClient:
    """Open an RPyC connection to a stack controller and authenticate."""
    log.debug("Connecting to {host}:{port}", host=auth.api_server, port=port)
    try:
        conn = rpyc.connect(auth.api_server, port, config={"sync_request_timeout": None})
    except Exception as e:
        raise RemoteCallError("connect", str(e)) from e

    try:
        conn.root.authenticate(auth.api_key)
    except Exception as e:
        conn.close()
        raise RemoteCallError("authenticate", str(e)) from e
    return ControllerClient(conn.root, conn)
