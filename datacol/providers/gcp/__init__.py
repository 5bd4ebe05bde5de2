"""GCP backend for datacol.

Drives the gcloud and kubectl CLIs; both must be installed and the
operator logged in with ``gcloud auth login``.
"""

from __future__ import annotations

from .provider import GCPProvider

__all__ = [
    "GCPProvider",
]
