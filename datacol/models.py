"""Records and value types flowing between datacol components."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True, slots=True)
class Stack:
    """One provisioned infrastructure instance, keyed by name."""

    name: str
    project_id: str
    zone: str
    bucket: str
    service_key: str = field(repr=False)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Stack:
        return cls(
            name=raw["name"],
            project_id=raw["project_id"],
            zone=raw["zone"],
            bucket=raw["bucket"],
            service_key=raw["service_key"],
        )


@dataclass(frozen=True, slots=True)
class Auth:
    """How to reach and authenticate to a stack's controller."""

    name: str
    project: str
    bucket: str
    api_server: str
    api_key: str = field(repr=False)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Auth:
        return cls(
            name=raw["name"],
            project=raw["project"],
            bucket=raw["bucket"],
            api_server=raw["api_server"],
            api_key=raw["api_key"],
        )


@dataclass(frozen=True, slots=True)
class Credential:
    """Result of credential issuance by a provider."""

    data: bytes = field(repr=False)
    project_id: str
    project_number: str = ""
    service_account_email: str = ""


@dataclass(frozen=True, slots=True)
class StackEndpoint:
    """Result of remote provisioning: where the controller listens."""

    host: str
    password: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class InitOptions:
    """Inputs to stack initialization.

    The fields after ``version`` are resolved by the orchestrator from
    the issued credential and the defaulting rules.
    """

    name: str = "demo"
    zone: str = "us-east1-b"
    bucket: str = ""
    nodes: int = 2
    cluster_name: str = ""
    disk_size: int = 10
    machine_type: str = "n1-standard-1"
    preemptible: bool = True
    opt_out: bool = False
    api_key: str = field(default="", repr=False)
    cluster_version: str = "1.6.4"
    version: str = ""

    project: str = ""
    project_number: str = ""
    service_account_email: str = ""
    cluster_not_exists: bool = False


@dataclass(frozen=True, slots=True)
class InitResult:
    stack: Stack
    auth: Auth


@dataclass(frozen=True, slots=True)
class TeardownResult:
    name: str
    cleanup_error: OSError | None = None

    @property
    def clean(self) -> bool:
        return self.cleanup_error is None


@dataclass(frozen=True, slots=True)
class ExecResult:
    """Outcome of a command run through the exec bridge."""

    status: int
    stdout: bytes
    stderr: bytes

    @property
    def output(self) -> bytes:
        """The buffer surfaced to the user: stderr on failure, stdout otherwise."""
        return self.stderr if self.status != 0 else self.stdout
