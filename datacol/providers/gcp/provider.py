"""GCP provider for datacol.

Implements the Provider protocol by driving the gcloud and kubectl
CLIs synchronously. Credentials come from the operator's gcloud login;
the issued service account key is handed back to the orchestrator.

Every create step looks its resource up first and reuses it, and every
delete step skips a resource that is already gone, so init and teardown
can be re-run after a partial failure.
"""

from __future__ import annotations

import os
import secrets

from loguru import logger

from datacol.config import ConfigPaths, Settings
from datacol.constants import CLUSTER_SUFFIX
from datacol.exceptions import ProviderError
from datacol.models import Credential, InitOptions, Stack, StackEndpoint

from .cli import run, run_text, succeeds

log = logger.bind(component="gcp")


def service_account_id(name: str) -> str:
    return f"datacol-{name}"


def service_account_email(name: str, project: str) -> str:
    return f"{service_account_id(name)}@{project}.iam.gserviceaccount.com"


def region_of(zone: str) -> str:
    """us-east1-b -> us-east1"""
    return zone.rsplit("-", 1)[0]


class GCPProvider:
    """Stateless GCP backend. Holds settings and, after init, the stack."""

    def __init__(self, settings: Settings, stack: Stack | None = None) -> None:
        self._gcloud = settings.gcloud
        self._kubectl = settings.kubectl
        self._paths: ConfigPaths = settings.paths
        self._stack = stack

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------

    def create_credential(self, name: str, opt_out: bool) -> Credential:
        project = run_text(self._gcloud, "config", "get-value", "project")
        if not project:
            return Credential(data=b"", project_id="")

        log.info("Issuing credential for {name} in {project}", name=name, project=project)
        if opt_out:
            log.debug("Operator opted out of update emails")

        number = run_text(
            self._gcloud, "projects", "describe", project, "--format=value(projectNumber)",
        )

        account = service_account_id(name)
        email = service_account_email(name, project)
        if self._service_account_exists(email, project):
            log.info("Reusing service account {email}", email=email)
        else:
            run(
                self._gcloud, "iam", "service-accounts", "create", account,
                f"--project={project}", f"--display-name=datacol {name}",
            )
        run(
            self._gcloud, "projects", "add-iam-policy-binding", project,
            f"--member=serviceAccount:{email}", "--role=roles/editor", "--quiet",
        )
        key = run(
            self._gcloud, "iam", "service-accounts", "keys", "create", "-",
            f"--iam-account={email}", f"--project={project}",
        )
        return Credential(data=key, project_id=project, project_number=number, service_account_email=email)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize_stack(self, options: InitOptions) -> StackEndpoint:
        project = f"--project={options.project}"
        zone = f"--zone={options.zone}"

        if self._bucket_exists(options.bucket, options.project):
            log.info("Reusing bucket {bucket}", bucket=options.bucket)
        else:
            run(
                self._gcloud, "storage", "buckets", "create", f"gs://{options.bucket}",
                project, f"--location={region_of(options.zone)}",
            )

        if options.cluster_not_exists and self._cluster_location(options.cluster_name, options.project):
            log.info("Reusing cluster {cluster} from an earlier run", cluster=options.cluster_name)
        elif options.cluster_not_exists:
            args = [
                "container", "clusters", "create", options.cluster_name, project, zone,
                f"--num-nodes={options.nodes}",
                f"--machine-type={options.machine_type}",
                f"--disk-size={options.disk_size}",
                f"--cluster-version={options.cluster_version}",
            ]
            if options.service_account_email:
                args.append(f"--service-account={options.service_account_email}")
            if options.preemptible:
                args.append("--preemptible")
            run(self._gcloud, *args)
        else:
            log.info("Using existing cluster {cluster}", cluster=options.cluster_name)

        kubeconfig = self._paths.kubeconfig_path(options.name)
        env = {**os.environ, "KUBECONFIG": str(kubeconfig)}
        run(self._gcloud, "container", "clusters", "get-credentials", options.cluster_name, project, zone, env=env)

        host = run_text(
            self._gcloud, "container", "clusters", "describe", options.cluster_name,
            project, zone, "--format=value(endpoint)",
        )
        if not host:
            raise ProviderError(f"Cluster {options.cluster_name} has no endpoint")

        password = options.api_key or secrets.token_urlsafe(16)
        return StackEndpoint(host=host, password=password)

    def teardown_stack(self, name: str, project: str, bucket: str) -> None:
        cluster = f"{name}{CLUSTER_SUFFIX}"
        location = self._cluster_location(cluster, project)
        if location:
            run(
                self._gcloud, "container", "clusters", "delete", cluster,
                f"--project={project}", f"--zone={location}", "--quiet",
            )
        else:
            log.info("Cluster {cluster} not found, skipping", cluster=cluster)

        if self._bucket_exists(bucket, project):
            run(self._gcloud, "storage", "rm", "--recursive", f"gs://{bucket}", f"--project={project}")
        else:
            log.info("Bucket {bucket} not found, skipping", bucket=bucket)

        email = service_account_email(name, project)
        if self._service_account_exists(email, project):
            run(self._gcloud, "iam", "service-accounts", "delete", email, f"--project={project}", "--quiet")
        else:
            log.info("Service account {email} not found, skipping", email=email)

    def _cluster_location(self, cluster: str, project: str) -> str:
        """Zone of the named cluster, or "" when it does not exist."""
        return run_text(
            self._gcloud, "container", "clusters", "list", f"--project={project}",
            f"--filter=name={cluster}", "--format=value(location)",
        )

    def _bucket_exists(self, bucket: str, project: str) -> bool:
        return succeeds(self._gcloud, "storage", "buckets", "describe", f"gs://{bucket}", f"--project={project}")

    def _service_account_exists(self, email: str, project: str) -> bool:
        return succeeds(self._gcloud, "iam", "service-accounts", "describe", email, f"--project={project}")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_running_pods(self, app: str) -> str:
        if self._stack is None:
            raise ProviderError("No stack selected")

        names = run_text(
            self._kubectl,
            f"--kubeconfig={self._paths.kubeconfig_path(self._stack.name)}",
            "-n", self._stack.name,
            "get", "pods", "-l", f"app={app}",
            "--field-selector=status.phase=Running",
            "-o", "jsonpath={.items[*].metadata.name}",
        ).split()
        if not names:
            raise ProviderError(f"No running pod found for app {app}")
        return names[0]
