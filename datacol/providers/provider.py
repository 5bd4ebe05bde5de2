from typing import Protocol, runtime_checkable

from datacol.models import Credential, InitOptions, StackEndpoint


@runtime_checkable
class Provider(Protocol):
    """Interface for cloud backend operations.

    Implementations hold only immutable settings plus, once a stack
    exists, the stack they operate on. The orchestrator and the exec
    bridge depend on this interface only.
    """

    def create_credential(self, name: str, opt_out: bool) -> Credential:
        """Issue a service credential for a new stack.

        Parameters
        ----------
        name
            Stack name the credential is issued for.
        opt_out
            Opt out of product update emails.

        Returns
        -------
        Credential
            Credential bytes plus the project it belongs to. Either may
            be empty; the caller validates them.
        """
        ...

    def initialize_stack(self, options: InitOptions) -> StackEndpoint:
        """Provision cluster, storage and networking for a stack.

        Parameters
        ----------
        options
            Fully resolved init options (project, bucket and cluster
            name already defaulted).

        Returns
        -------
        StackEndpoint
            Controller host address and API password.
        """
        ...

    def teardown_stack(self, name: str, project: str, bucket: str) -> None:
        """Destroy everything initialize_stack created."""
        ...

    def get_running_pods(self, app: str) -> str:
        """Return the identifier of a running pod for app."""
        ...
