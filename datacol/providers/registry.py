"""Provider registry.

Selects the provider backend named in the settings. Backends are
imported lazily so their dependencies load only when used.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from datacol.exceptions import ConfigurationError

if TYPE_CHECKING:
    from datacol.config import Settings
    from datacol.models import Stack

    from .provider import Provider

log = logger.bind(component="registry")

PROVIDERS = ("gcp",)


def create_provider(settings: Settings, stack: Stack | None = None) -> Provider:
    """Create the provider backend configured in settings.

    ``stack`` is None before a stack exists (during init).
    """
    log.debug("Creating provider {provider}", provider=settings.provider)

    match settings.provider:
        case "gcp":
            from .gcp.provider import GCPProvider
            return GCPProvider(settings, stack)
        case _:
            raise ConfigurationError(
                f"No provider registered for '{settings.provider}'. "
                f"Available providers: {', '.join(PROVIDERS)}"
            )
