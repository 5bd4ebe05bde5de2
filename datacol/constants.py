"""Filesystem names and defaults shared across datacol."""

from __future__ import annotations

ROOT_DIR_NAME = ".datacol"
STORE_FILE_NAME = "datacol.db"
CONFIG_FILE_NAME = "config.toml"
CREDENTIAL_FILE_NAME = "service-account.json"
KUBECONFIG_FILE_NAME = "kubeconfig"

DIR_MODE = 0o700
CREDENTIAL_MODE = 0o600

DEFAULT_CONTROLLER_PORT = 18861

# State store buckets
STACKS_BUCKET = "stacks"
AUTH_BUCKET = "auth"
META_BUCKET = "meta"
CURRENT_STACK_KEY = "current"

BUCKET_PREFIX = "datacol-"
CLUSTER_SUFFIX = "-cluster"

REQUIRED_APIS = (
    "datastore.googleapis.com",
    "cloudbuild.googleapis.com",
    "deploymentmanager",
    "iam.googleapis.com",
)

ENABLE_API_URL = "https://console.cloud.google.com/flows/enableapi?apiid={apis}&project={project}"
