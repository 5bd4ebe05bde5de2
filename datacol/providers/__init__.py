"""Cloud backends behind the Provider capability."""

from .provider import Provider
from .registry import create_provider

__all__ = [
    "Provider",
    "create_provider",
]
