from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path

import pytest

from datacol.config import ConfigPaths
from datacol.models import Credential, InitOptions, StackEndpoint
from datacol.registry import StackRegistry
from datacol.stack import StackOrchestrator
from datacol.store import Store

SERVICE_KEY = b'{"type": "service_account", "project_id": "proj-1"}'


class FakeProvider:
    """In-memory Provider that records every call."""

    def __init__(
        self,
        credential: Credential | None = None,
        endpoint: StackEndpoint | None = None,
        pod: str = "web-7f",
    ) -> None:
        self.credential = credential or Credential(
            data=SERVICE_KEY,
            project_id="proj-1",
            project_number="1234",
            service_account_email="datacol-demo@proj-1.iam.gserviceaccount.com",
        )
        self.endpoint = endpoint or StackEndpoint(host="10.0.0.1", password="s3cret")
        self.pod = pod
        self.init_error: Exception | None = None
        self.teardown_error: Exception | None = None
        self.pod_error: Exception | None = None
        self.calls: list[tuple[str, object]] = []
        self.init_options: InitOptions | None = None

    def create_credential(self, name: str, opt_out: bool) -> Credential:
        self.calls.append(("create_credential", (name, opt_out)))
        return self.credential

    def initialize_stack(self, options: InitOptions) -> StackEndpoint:
        self.calls.append(("initialize_stack", options.name))
        self.init_options = options
        if self.init_error:
            raise self.init_error
        return self.endpoint

    def teardown_stack(self, name: str, project: str, bucket: str) -> None:
        self.calls.append(("teardown_stack", (name, project, bucket)))
        if self.teardown_error:
            raise self.teardown_error

    def get_running_pods(self, app: str) -> str:
        self.calls.append(("get_running_pods", app))
        if self.pod_error:
            raise self.pod_error
        return self.pod

    def called(self, name: str) -> bool:
        return any(call == name for call, _ in self.calls)


class FakeLogStream:
    def __init__(self, chunks: Sequence[bytes], error: Exception | None = None) -> None:
        self._chunks = iter(chunks)
        self._error = error
        self.closed = False
        self.received = 0

    def __next__(self) -> bytes:
        try:
            chunk = next(self._chunks)
        except StopIteration:
            if self._error is not None:
                raise self._error from None
            raise
        self.received += 1
        return chunk

    def close(self) -> None:
        self.closed = True


class FakeController:
    """Stand-in for the controller's RPyC root."""

    def __init__(self) -> None:
        self.apps: dict[str, dict[str, str]] = {"web": {"name": "web", "status": "running"}}
        self.env: dict[str, dict[str, str]] = {"web": {"B": "2", "A": "1"}}
        self.stream = FakeLogStream([b"line 1\n", b"line 2\n"])
        self.stream_args: tuple[str, float, bool] | None = None
        self.calls: list[tuple[str, tuple[object, ...]]] = []

    def app_list(self) -> list[dict[str, str]]:
        return list(self.apps.values())

    def app_get(self, name: str) -> dict[str, str]:
        if name not in self.apps:
            raise KeyError(f"app {name} not found")
        return self.apps[name]

    def app_create(self, name: str) -> dict[str, str]:
        self.apps[name] = {"name": name, "status": "created"}
        return self.apps[name]

    def app_delete(self, name: str) -> None:
        self.apps.pop(name)

    def app_restart(self, name: str) -> None:
        self.calls.append(("app_restart", (name,)))

    def environment_get(self, name: str) -> dict[str, str]:
        return self.env[name]

    def environment_set(self, name: str, data: str) -> None:
        self.calls.append(("environment_set", (name, data)))

    def log_stream(self, name: str, since: float, follow: bool) -> FakeLogStream:
        self.stream_args = (name, since, follow)
        return self.stream

    def process_run(self, name: str, command: list[str]) -> dict[str, object]:
        return {"exit_code": 0, "stdout": " ".join(command)}


@pytest.fixture
def root(tmp_path: Path) -> Path:
    return tmp_path / "datacol"


@pytest.fixture
def paths(root: Path) -> ConfigPaths:
    return ConfigPaths(root)


@pytest.fixture
def store(root: Path) -> Iterator[Store]:
    with Store(root) as s:
        yield s


@pytest.fixture
def registry(store: Store) -> StackRegistry:
    return StackRegistry(store)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def orchestrator(provider: FakeProvider, registry: StackRegistry, paths: ConfigPaths) -> StackOrchestrator:
    return StackOrchestrator(provider, registry, paths)


@pytest.fixture
def controller() -> FakeController:
    return FakeController()
