"""datacol CLI."""

from __future__ import annotations

import re
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import timedelta
from pathlib import Path
from typing import Annotated

import typer
from injector import Injector
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .bridge import ExecBridge
from .config import Settings, load_settings
from .exceptions import DatacolError
from .gateway import ControllerClient
from .logging import LogConfig, setup_logging, teardown_logging
from .models import InitOptions
from .module import DatacolModule
from .registry import Client, StackRegistry
from .stack import StackOrchestrator
from .store import Store

WELCOME = """Welcome to the datacol CLI. This command will guide you through creating a new infrastructure inside your Google account.
It uses various Google services (like Container engine, Cloudbuilder, Deployment Manager etc) under the hood to
automate all away to give you a better deployment experience.

datacol will authenticate with your Google Account and install the datacol platform into your GCP account.
These credentials will only be used to communicate between this installer running on your computer and the Google platform.
"""

app = typer.Typer(
    name="datacol",
    help="Create and operate application stacks on your own cloud account",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)
apps_app = typer.Typer(help="Manage apps in the current stack", no_args_is_help=True)
env_app = typer.Typer(help="Manage app environment variables", no_args_is_help=True)
app.add_typer(apps_app, name="apps")
app.add_typer(env_app, name="env")

console = Console()


# =============================================================================
# Helper Functions
# =============================================================================


def print_success(message: str) -> None:
    console.print(f"[green]OK[/green] {escape(message)}")


def print_error(message: str) -> None:
    console.print(f"[red]ERROR[/red] {escape(message)}")


def print_warning(message: str) -> None:
    console.print(f"[yellow]WARN[/yellow] {escape(message)}")


@contextmanager
def handle_errors() -> Iterator[None]:
    """Print datacol errors and exit non-zero."""
    try:
        yield
    except DatacolError as e:
        print_error(str(e))
        raise typer.Exit(1) from e


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str) -> timedelta:
    """Parse durations like 90s, 10m or 1h2m10s."""
    text = value.strip()
    seconds = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if not text or pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return timedelta(seconds=seconds)


def app_name_from_dir(path: Path | None = None) -> str:
    return (path or Path.cwd()).resolve().name


def _injector(ctx: typer.Context) -> Injector:
    return ctx.find_root().obj


def _controller(ctx: typer.Context) -> ControllerClient:
    controller = _injector(ctx).get(ControllerClient)
    ctx.call_on_close(controller.close)
    return controller


# =============================================================================
# Entry point
# =============================================================================


def _version(value: bool) -> None:
    if value:
        console.print(f"datacol {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    stack: Annotated[
        str | None, typer.Option("--stack", envvar="STACK", help="Stack to operate on")
    ] = None,
    debug: Annotated[
        bool, typer.Option("--debug", envvar="DATACOL_DEBUG", help="Enable debug logging")
    ] = False,
    version: Annotated[
        bool, typer.Option("--version", callback=_version, is_eager=True, help="Show version")
    ] = False,
) -> None:
    with handle_errors():
        settings = load_settings()
        if stack:
            settings = replace(settings, stack=stack)

        if debug or settings.log_file:
            logger.remove()
            level = "DEBUG" if debug else settings.log_level
            handler_ids = setup_logging(LogConfig(level=level, file=settings.log_file, console=debug))
            ctx.call_on_close(lambda: teardown_logging(handler_ids))

        injector = Injector([DatacolModule(settings)])
        store = injector.get(Store)
        ctx.call_on_close(store.close)

    ctx.obj = injector


# =============================================================================
# Stack lifecycle
# =============================================================================


@app.command()
def init(
    ctx: typer.Context,
    stack: Annotated[str, typer.Option("--stack", help="Name of stack")] = "demo",
    zone: Annotated[str, typer.Option(help="GCP zone for stack")] = "us-east1-b",
    bucket: Annotated[str, typer.Option(help="GCP storage bucket")] = "",
    nodes: Annotated[int, typer.Option(help="Number of nodes in container cluster")] = 2,
    cluster: Annotated[str, typer.Option(help="Name of an existing Kubernetes cluster in GCP")] = "",
    disk_size: Annotated[int, typer.Option(help="SSD disk size for cluster in GB")] = 10,
    machine_type: Annotated[str, typer.Option(help="Machine type to use for cluster")] = "n1-standard-1",
    preemptible: Annotated[bool, typer.Option(help="Use preemptible VMs")] = True,
    opt_out: Annotated[bool, typer.Option(help="Opt out from getting updates via email")] = False,
    password: Annotated[str, typer.Option(help="API password for the stack")] = "",
    cluster_version: Annotated[
        str, typer.Option(help="Kubernetes version for the master and nodes")
    ] = "1.6.4",
) -> None:
    """Create a new stack."""
    options = InitOptions(
        name=stack,
        zone=zone,
        bucket=bucket,
        nodes=nodes,
        cluster_name=cluster,
        disk_size=disk_size,
        machine_type=machine_type,
        preemptible=preemptible,
        opt_out=opt_out,
        api_key=password,
        cluster_version=cluster_version,
        version=__version__,
    )

    console.print(WELCOME)
    with handle_errors():
        workflow = _injector(ctx).get(StackOrchestrator).begin_init(options)
        request = workflow.issue_credential()

        console.print(
            "\ndatacol needs to communicate with various APIs provided by the cloud platform. "
            "Please enable them by opening the following link in a browser and click Continue:"
        )
        console.print(request.url, soft_wrap=True)
        if not typer.confirm("Are you done?"):
            workflow.decline()
            print_error("Aborted")
            raise typer.Exit(1)

        workflow.confirm()
        result = workflow.provision()

    console.print(f"\nStack hostIP {result.auth.api_server}")
    console.print(f"Stack password: {result.auth.api_key} [Please keep it secret]", markup=False)
    print_success("DONE")
    console.print(f"Next, create an app with `STACK={stack} datacol apps create`.", markup=False)


@app.command()
def destroy(ctx: typer.Context) -> None:
    """Destroy the current stack."""
    with handle_errors():
        settings = _injector(ctx).get(Settings)
        result = _injector(ctx).get(StackOrchestrator).teardown(settings.stack)

    if not result.clean:
        print_warning(f"Stack {result.name} destroyed, but local files remain: {result.cleanup_error}")
    print_success("DONE")


@app.command("stacks")
def list_stacks(ctx: typer.Context) -> None:
    """List registered stacks."""
    registry = _injector(ctx).get(StackRegistry)
    with handle_errors():
        stacks = registry.list_stacks()
        current = registry.current_stack_name()

    table = Table("", "NAME", "PROJECT", "ZONE", "BUCKET")
    for s in stacks:
        table.add_row("*" if s.name == current else "", s.name, s.project_id, s.zone, s.bucket)
    console.print(table)


# =============================================================================
# Day-2 operations
# =============================================================================


@app.command()
def logs(
    ctx: typer.Context,
    name: Annotated[str | None, typer.Argument(help="App name (default: current directory)")] = None,
    follow: Annotated[bool, typer.Option("--follow", "-f", help="Keep streaming new log output")] = False,
    since: Annotated[str, typer.Option(help="Show logs since a duration (e.g. 10m or 1h2m10s)")] = "2m",
) -> None:
    """Stream logs for an app."""
    try:
        lookback = parse_duration(since)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--since") from e

    with handle_errors():
        try:
            _controller(ctx).stream_app_logs(name or app_name_from_dir(), follow, lookback, sys.stdout.buffer)
        except BrokenPipeError:
            # Reader went away (e.g. `| head`); stdout is unusable for the error.
            raise typer.Exit(1) from None
        except OSError as e:
            print_error(f"could not write logs: {e}")
            raise typer.Exit(1) from e


@app.command(context_settings={"ignore_unknown_options": True})
def run(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="App name")],
    command: Annotated[list[str], typer.Argument(help="Command to execute")],
) -> None:
    """Execute a command in a running pod of an app."""
    with handle_errors():
        _controller(ctx).get_app(name)
        stack = _injector(ctx).get(Client).require_stack()
        status = _injector(ctx).get(ExecBridge).run(stack.name, name, command)
    raise typer.Exit(status)


@apps_app.command("list")
def apps_list(ctx: typer.Context) -> None:
    """List apps."""
    with handle_errors():
        for item in _controller(ctx).get_apps():
            console.print(item)


@apps_app.command("get")
def apps_get(ctx: typer.Context, name: Annotated[str | None, typer.Argument()] = None) -> None:
    """Show an app."""
    with handle_errors():
        console.print(_controller(ctx).get_app(name or app_name_from_dir()))


@apps_app.command("create")
def apps_create(ctx: typer.Context, name: Annotated[str | None, typer.Argument()] = None) -> None:
    """Create an app."""
    with handle_errors():
        console.print(_controller(ctx).create_app(name or app_name_from_dir()))


@apps_app.command("delete")
def apps_delete(ctx: typer.Context, name: Annotated[str | None, typer.Argument()] = None) -> None:
    """Delete an app."""
    name = name or app_name_from_dir()
    with handle_errors():
        _controller(ctx).delete_app(name)
    print_success(f"Deleted {name}")


@apps_app.command("restart")
def apps_restart(ctx: typer.Context, name: Annotated[str | None, typer.Argument()] = None) -> None:
    """Restart an app."""
    name = name or app_name_from_dir()
    with handle_errors():
        _controller(ctx).restart_app(name)
    print_success(f"Restarted {name}")


@env_app.command("get")
def env_get(ctx: typer.Context, name: Annotated[str | None, typer.Argument()] = None) -> None:
    """Print an app's environment as KEY=VALUE lines."""
    with handle_errors():
        env = _controller(ctx).get_environment(name or app_name_from_dir())
    for key, value in env.items():
        console.print(f"{key}={value}", markup=False, highlight=False)


@env_app.command("set")
def env_set(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="App name")],
    pairs: Annotated[list[str], typer.Argument(help="KEY=VALUE pairs")],
) -> None:
    """Set environment variables for an app."""
    for pair in pairs:
        if "=" not in pair:
            raise typer.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="PAIRS")
    with handle_errors():
        _controller(ctx).set_environment(name, "\n".join(pairs))
    print_success(f"Updated environment of {name}")


def main() -> None:
    app()
