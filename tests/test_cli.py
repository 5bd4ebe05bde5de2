from __future__ import annotations

import subprocess
from pathlib import Path

import pytest
from typer.testing import CliRunner

import datacol.bridge
import datacol.module
from datacol.cli import app, app_name_from_dir, parse_duration
from datacol.gateway import ControllerClient

from tests.conftest import FakeController, FakeLogStream, FakeProvider

runner = CliRunner()


@pytest.fixture
def home(tmp_path: Path, monkeypatch) -> Path:
    root = tmp_path / "datacol"
    monkeypatch.setenv("DATACOL_HOME", str(root))
    for var in ("STACK", "DATACOL_PROVIDER", "DATACOL_CONTROLLER_PORT", "DATACOL_DEBUG", "DATACOL_LOG_FILE"):
        monkeypatch.delenv(var, raising=False)
    return root


@pytest.fixture
def provider(monkeypatch) -> FakeProvider:
    fake = FakeProvider()
    monkeypatch.setattr(datacol.module, "create_provider", lambda settings, stack: fake)
    return fake


@pytest.fixture
def controller(monkeypatch) -> FakeController:
    fake = FakeController()
    monkeypatch.setattr(datacol.module, "connect", lambda auth, port: ControllerClient(fake))
    return fake


def init_stack(name: str = "demo"):
    return runner.invoke(app, ["init", "--stack", name], input="y\n")


class TestParseDuration:
    @pytest.mark.parametrize(
        ("text", "seconds"),
        [("2m", 120), ("90s", 90), ("1h2m10s", 3730), ("1.5h", 5400), ("250ms", 0.25)],
    )
    def test_valid(self, text: str, seconds: float):
        assert parse_duration(text).total_seconds() == seconds

    @pytest.mark.parametrize("text", ["", "10", "m", "10x", "5m junk"])
    def test_invalid(self, text: str):
        with pytest.raises(ValueError):
            parse_duration(text)


def test_app_name_from_dir(tmp_path: Path):
    app_dir = tmp_path / "web"
    app_dir.mkdir()
    assert app_name_from_dir(app_dir) == "web"


class TestStackCommands:
    def test_init_and_list(self, home: Path, provider: FakeProvider):
        result = init_stack()

        assert result.exit_code == 0, result.output
        assert "project=proj-1" in result.output
        assert "Stack hostIP 10.0.0.1" in result.output
        assert "DONE" in result.output
        assert (home / "demo" / "service-account.json").exists()

        listing = runner.invoke(app, ["stacks"])
        assert listing.exit_code == 0
        assert "datacol-proj-1" in listing.output

    def test_init_declined(self, home: Path, provider: FakeProvider):
        result = runner.invoke(app, ["init"], input="n\n")

        assert result.exit_code == 1
        assert not provider.called("initialize_stack")

    def test_init_failure_prints_error(self, home: Path, provider: FakeProvider):
        provider.credential = type(provider.credential)(data=b"", project_id="")

        result = init_stack()

        assert result.exit_code == 1
        assert "Invalid credentials" in result.output

    def test_destroy_without_stack(self, home: Path, provider: FakeProvider):
        result = runner.invoke(app, ["destroy"])

        assert result.exit_code == 1
        assert "datacol init" in result.output

    def test_destroy(self, home: Path, provider: FakeProvider):
        init_stack()

        result = runner.invoke(app, ["destroy"])

        assert result.exit_code == 0, result.output
        assert not (home / "demo").exists()
        assert runner.invoke(app, ["destroy"]).exit_code == 1

    def test_version(self, home: Path):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "datacol 0.1.0" in result.output


class TestDayTwoCommands:
    def test_logs_stream_to_stdout(self, home: Path, provider: FakeProvider, controller: FakeController):
        init_stack()
        controller.stream = FakeLogStream([b"first\n", b"second\n"])

        result = runner.invoke(app, ["logs", "web", "--since", "10m"])

        assert result.exit_code == 0, result.output
        assert "first\nsecond\n" in result.output
        assert controller.stream_args == ("web", 600.0, False)
        assert controller.stream.closed

    def test_logs_bad_duration(self, home: Path, provider: FakeProvider, controller: FakeController):
        init_stack()
        result = runner.invoke(app, ["logs", "web", "--since", "soon"])
        assert result.exit_code == 2

    @pytest.mark.parametrize(
        ("error", "message"),
        [(BrokenPipeError(32, "Broken pipe"), ""), (OSError(28, "No space left on device"), "could not write logs")],
    )
    def test_logs_sink_failure_exits_cleanly(
        self, home: Path, provider: FakeProvider, controller: FakeController, monkeypatch,
        error: OSError, message: str,
    ):
        init_stack()

        def fail(self, *_args):
            raise error

        monkeypatch.setattr(ControllerClient, "stream_app_logs", fail)
        result = runner.invoke(app, ["logs", "web"])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert message in result.output
        assert "Traceback" not in result.output

    def test_logs_requires_stack(self, home: Path, provider: FakeProvider, controller: FakeController):
        result = runner.invoke(app, ["logs", "web"])
        assert result.exit_code == 1
        assert "datacol init" in result.output

    def test_run_propagates_exit_status(
        self, home: Path, provider: FakeProvider, controller: FakeController, monkeypatch,
    ):
        init_stack()

        def fake_run(cmd, **_kwargs):
            return subprocess.CompletedProcess(cmd, 2, b"ignored", b"boom")

        monkeypatch.setattr(datacol.bridge.subprocess, "run", fake_run)
        result = runner.invoke(app, ["run", "web", "--", "ls", "-la"])

        assert result.exit_code == 2
        assert "boom" in result.output
        assert "ignored" not in result.output
        assert ("get_running_pods", "web") in provider.calls

    def test_run_unknown_app(self, home: Path, provider: FakeProvider, controller: FakeController):
        init_stack()

        result = runner.invoke(app, ["run", "api", "--", "ls"])

        assert result.exit_code == 1
        assert "app_get" in result.output
        assert not provider.called("get_running_pods")

    def test_apps_and_env(self, home: Path, provider: FakeProvider, controller: FakeController):
        init_stack()

        assert runner.invoke(app, ["apps", "create", "api"]).exit_code == 0
        assert "api" in controller.apps

        result = runner.invoke(app, ["env", "get", "web"])
        assert result.output.splitlines() == ["B=2", "A=1"]

        result = runner.invoke(app, ["env", "set", "web", "A=1", "C=3"])
        assert result.exit_code == 0
        assert ("environment_set", ("web", "A=1\nC=3")) in controller.calls

    def test_env_set_rejects_bad_pair(self, home: Path, provider: FakeProvider, controller: FakeController):
        init_stack()
        result = runner.invoke(app, ["env", "set", "web", "NOEQUALS"])
        assert result.exit_code == 2
