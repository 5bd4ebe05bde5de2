"""Stack lifecycle orchestration.

Init runs as an explicit state machine so the caller can observe the
confirmation checkpoint instead of the orchestrator blocking on a
terminal:

    workflow = orchestrator.begin_init(options)
    request = workflow.issue_credential()   # START -> CREDENTIAL_ISSUED
    ...show request.url, ask the operator...
    workflow.confirm()                      # -> APIS_CONFIRMED
    result = workflow.provision()           # -> PROVISIONED -> PERSISTED -> DONE

Local records are written only after remote provisioning succeeds, and
deleted only after remote teardown succeeds. The credential file is
the exception: it is saved as soon as it is issued and is left in place
if a later step fails (a re-run overwrites it).
"""

from __future__ import annotations

import base64
import os
import re
import shutil
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import StrEnum

from loguru import logger

from .config import ConfigPaths
from .constants import (
    BUCKET_PREFIX,
    CLUSTER_SUFFIX,
    CREDENTIAL_MODE,
    DIR_MODE,
    ENABLE_API_URL,
    REQUIRED_APIS,
)
from .exceptions import (
    CredentialError,
    InitAbortedError,
    ProjectResolutionError,
    WorkflowStateError,
)
from .models import Auth, Credential, InitOptions, InitResult, Stack, TeardownResult
from .providers.provider import Provider
from .registry import StackRegistry

log = logger.bind(component="stack")


class InitState(StrEnum):
    START = "start"
    CREDENTIAL_ISSUED = "credential_issued"
    APIS_CONFIRMED = "apis_confirmed"
    PROVISIONED = "provisioned"
    PERSISTED = "persisted"
    DONE = "done"
    ABORTED = "aborted"
    FAILED = "failed"


class TeardownState(StrEnum):
    START = "start"
    AUTH_LOADED = "auth_loaded"
    REMOTE_DESTROYED = "remote_destroyed"
    LOCAL_CLEARED = "local_cleared"
    DONE = "done"


def slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def resolve_options(options: InitOptions, credential: Credential) -> InitOptions:
    """Fill in project details and the bucket and cluster defaults."""
    bucket = options.bucket or f"{BUCKET_PREFIX}{slug(credential.project_id)}"
    cluster_not_exists = not options.cluster_name
    cluster_name = options.cluster_name or f"{options.name}{CLUSTER_SUFFIX}"

    return replace(
        options,
        project=credential.project_id,
        project_number=credential.project_number,
        service_account_email=credential.service_account_email,
        bucket=bucket,
        cluster_name=cluster_name,
        cluster_not_exists=cluster_not_exists,
    )


def save_credential(paths: ConfigPaths, name: str, data: bytes) -> None:
    """Write the credential into the stack directory, owner-only."""
    stack_dir = paths.stack_dir(name)
    stack_dir.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)

    path = paths.credential_path(name)
    log.debug("Saving credentials at {path}", path=str(path))
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CREDENTIAL_MODE)
    with os.fdopen(fd, "wb") as f:
        os.fchmod(f.fileno(), CREDENTIAL_MODE)
        f.write(data)


@dataclass(frozen=True, slots=True)
class ConfirmationRequest:
    """What the operator must do before provisioning continues."""

    stack: str
    project: str
    apis: tuple[str, ...] = REQUIRED_APIS

    @property
    def url(self) -> str:
        return ENABLE_API_URL.format(apis=",".join(self.apis), project=self.project)


class InitWorkflow:
    """One init run over a stack name.

    Each step checks the current state and moves to the next one; any
    exception moves the workflow to FAILED and is re-raised.
    """

    def __init__(
        self,
        options: InitOptions,
        provider: Provider,
        registry: StackRegistry,
        paths: ConfigPaths,
    ) -> None:
        self.options = options
        self.state = InitState.START
        self._provider = provider
        self._registry = registry
        self._paths = paths
        self._service_key = ""
        self._log = log.bind(stack=options.name)

    def _expect(self, *states: InitState) -> None:
        if self.state not in states:
            expected = " or ".join(states)
            raise WorkflowStateError(
                f"init of '{self.options.name}' is {self.state}, expected {expected}"
            )

    def _transition(self, state: InitState) -> None:
        self._log.debug("init {old} -> {new}", old=self.state, new=state)
        self.state = state

    @contextmanager
    def _step(self) -> Iterator[None]:
        try:
            yield
        except Exception:
            self._transition(InitState.FAILED)
            raise

    def issue_credential(self) -> ConfirmationRequest:
        self._expect(InitState.START)
        name = self.options.name

        with self._step():
            credential = self._provider.create_credential(name, self.options.opt_out)
            if not credential.data:
                raise CredentialError(name)
            if not credential.project_id:
                raise ProjectResolutionError(name)

            save_credential(self._paths, name, credential.data)
            self._service_key = base64.b64encode(credential.data).decode()
            self.options = resolve_options(self.options, credential)

        self._transition(InitState.CREDENTIAL_ISSUED)
        return ConfirmationRequest(stack=name, project=self.options.project)

    def confirm(self) -> None:
        self._expect(InitState.CREDENTIAL_ISSUED)
        self._transition(InitState.APIS_CONFIRMED)

    def decline(self) -> None:
        self._expect(InitState.CREDENTIAL_ISSUED)
        self._transition(InitState.ABORTED)

    def provision(self) -> InitResult:
        self._expect(InitState.APIS_CONFIRMED)
        opts = self.options

        with self._step():
            endpoint = self._provider.initialize_stack(opts)
        self._transition(InitState.PROVISIONED)
        self._log.info("Stack provisioned at {host}", host=endpoint.host)

        stack = Stack(
            name=opts.name,
            project_id=opts.project,
            zone=opts.zone,
            bucket=opts.bucket,
            service_key=self._service_key,
        )
        auth = Auth(
            name=opts.name,
            project=opts.project,
            bucket=opts.bucket,
            api_server=endpoint.host,
            api_key=endpoint.password,
        )
        with self._step():
            self._registry.put_stack(stack)
            self._registry.set_auth(auth)
        self._transition(InitState.PERSISTED)

        self._transition(InitState.DONE)
        return InitResult(stack=stack, auth=auth)


class StackOrchestrator:
    """Creates and tears down stacks against a provider backend."""

    def __init__(self, provider: Provider, registry: StackRegistry, paths: ConfigPaths) -> None:
        self._provider = provider
        self._registry = registry
        self._paths = paths

    def begin_init(self, options: InitOptions) -> InitWorkflow:
        return InitWorkflow(options, self._provider, self._registry, self._paths)

    def init(
        self,
        options: InitOptions,
        confirm: Callable[[ConfirmationRequest], bool],
    ) -> InitResult:
        """Run the whole init workflow, asking confirm() at the checkpoint."""
        workflow = self.begin_init(options)
        request = workflow.issue_credential()
        if not confirm(request):
            workflow.decline()
            raise InitAbortedError(options.name)
        workflow.confirm()
        return workflow.provision()

    def teardown(self, name: str | None = None) -> TeardownResult:
        """Destroy the stack remotely, then forget it locally.

        Local state is untouched if the remote destroy fails, so the
        teardown can be retried. Removing the stack directory is best
        effort: its failure is reported in the result.
        """
        auth = self._registry.get_auth(name)
        tlog = log.bind(stack=auth.name)
        tlog.debug("teardown {state}", state=TeardownState.AUTH_LOADED)

        self._provider.teardown_stack(auth.name, auth.project, auth.bucket)
        tlog.debug("teardown {state}", state=TeardownState.REMOTE_DESTROYED)

        # The remote side is gone: the directory goes even if a record delete fails.
        try:
            self._registry.delete_auth(auth.name)
            self._registry.delete_stack(auth.name)
        finally:
            cleanup_error = self._remove_stack_dir(auth.name)
        tlog.debug("teardown {state}", state=TeardownState.LOCAL_CLEARED)

        tlog.debug("teardown {state}", state=TeardownState.DONE)
        return TeardownResult(name=auth.name, cleanup_error=cleanup_error)

    def _remove_stack_dir(self, name: str) -> OSError | None:
        stack_dir = self._paths.stack_dir(name)
        try:
            if stack_dir.exists():
                shutil.rmtree(stack_dir)
        except OSError as e:
            log.bind(stack=name).warning("Could not remove {path}: {error}", path=str(stack_dir), error=e)
            return e
        return None
