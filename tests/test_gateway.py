from __future__ import annotations

import io
from datetime import timedelta

import pytest

import datacol.gateway
from datacol.exceptions import RemoteCallError
from datacol.gateway import ControllerClient, connect
from datacol.models import Auth

from tests.conftest import FakeController, FakeLogStream


class TestStreamAppLogs:
    def test_chunks_written_in_order(self, controller: FakeController):
        controller.stream = FakeLogStream([b"b1", b"b2", b"b3"])
        sink = io.BytesIO()

        ControllerClient(controller).stream_app_logs("web", False, timedelta(minutes=2), sink)

        assert sink.getvalue() == b"b1b2b3"
        assert controller.stream.closed

    def test_error_after_first_chunk(self, controller: FakeController):
        controller.stream = FakeLogStream([b"b1"], error=ConnectionResetError("reset by peer"))
        sink = io.BytesIO()

        with pytest.raises(RemoteCallError, match="reset by peer") as exc_info:
            ControllerClient(controller).stream_app_logs("web", True, timedelta(0), sink)

        assert exc_info.value.operation == "log_stream"
        assert sink.getvalue() == b"b1"
        assert controller.stream.closed

    def test_stream_parameters(self, controller: FakeController):
        ControllerClient(controller).stream_app_logs("web", True, timedelta(hours=1, seconds=5), io.BytesIO())
        assert controller.stream_args == ("web", 3605.0, True)

    def test_sink_failure_closes_stream(self, controller: FakeController):
        class BrokenSink(io.BytesIO):
            def write(self, _data):
                raise BrokenPipeError("stdout closed")

        with pytest.raises(BrokenPipeError):
            ControllerClient(controller).stream_app_logs("web", False, timedelta(0), BrokenSink())

        assert controller.stream.closed
        assert controller.stream.received == 1

    def test_open_failure(self, controller: FakeController):
        def refuse(*_args):
            raise PermissionError("forbidden")

        controller.log_stream = refuse
        with pytest.raises(RemoteCallError, match="log_stream: forbidden"):
            ControllerClient(controller).stream_app_logs("web", False, timedelta(0), io.BytesIO())


class TestRequestResponse:
    def test_get_apps(self, controller: FakeController):
        assert ControllerClient(controller).get_apps() == [{"name": "web", "status": "running"}]

    def test_remote_error_is_tagged(self, controller: FakeController):
        with pytest.raises(RemoteCallError) as exc_info:
            ControllerClient(controller).get_app("api")

        assert exc_info.value.operation == "app_get"
        assert "app api not found" in exc_info.value.message

    def test_create_delete_restart(self, controller: FakeController):
        client = ControllerClient(controller)

        assert client.create_app("api")["status"] == "created"
        client.restart_app("api")
        client.delete_app("api")

        assert "api" not in controller.apps
        assert ("app_restart", ("api",)) in controller.calls

    def test_environment_passes_through_unchanged(self, controller: FakeController):
        client = ControllerClient(controller)

        env = client.get_environment("web")
        assert env is controller.env["web"]
        assert list(env) == ["B", "A"]

        client.set_environment("web", "A=1\nB=2")
        assert ("environment_set", ("web", "A=1\nB=2")) in controller.calls

    def test_run_process(self, controller: FakeController):
        result = ControllerClient(controller).run_process("web", ["echo", "hi"])
        assert result == {"exit_code": 0, "stdout": "echo hi"}


class FakeConnection:
    def __init__(self, root) -> None:
        self.root = root
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeRoot:
    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.keys: list[str] = []

    def authenticate(self, key: str) -> None:
        self.keys.append(key)
        if not self.accept:
            raise ValueError("invalid api key")


AUTH = Auth(name="demo", project="proj-1", bucket="b", api_server="10.0.0.1", api_key="pw")


class TestConnect:
    def test_connect_authenticates(self, monkeypatch):
        conn = FakeConnection(FakeRoot())
        seen = {}

        def fake_connect(host, port, config):
            seen.update(host=host, port=port, config=config)
            return conn

        monkeypatch.setattr(datacol.gateway.rpyc, "connect", fake_connect)
        client = connect(AUTH, 18861)

        assert seen["host"] == "10.0.0.1"
        assert seen["port"] == 18861
        assert seen["config"]["sync_request_timeout"] is None
        assert conn.root.keys == ["pw"]

        client.close()
        assert conn.closed

    def test_connection_refused(self, monkeypatch):
        def refuse(*_args, **_kwargs):
            raise ConnectionRefusedError("connection refused")

        monkeypatch.setattr(datacol.gateway.rpyc, "connect", refuse)
        with pytest.raises(RemoteCallError, match="connect: connection refused"):
            connect(AUTH, 18861)

    def test_rejected_key_closes_connection(self, monkeypatch):
        conn = FakeConnection(FakeRoot(accept=False))
        monkeypatch.setattr(datacol.gateway.rpyc, "connect", lambda *_a, **_k: conn)

        with pytest.raises(RemoteCallError, match="authenticate: invalid api key"):
            connect(AUTH, 18861)
        assert conn.closed
