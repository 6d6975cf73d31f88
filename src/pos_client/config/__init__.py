"""Configuration for the POS data-access client.

Resolve once, freeze, then flow: ``resolve_config`` merges programmatic
overrides over ``POS_CLIENT_*`` environment variables over defaults and
returns an immutable ``FrozenConfig``.
"""

import logging
from typing import Any

from pydantic import ValidationError

from pos_client.core.exceptions import ConfigurationError

from .schema import ClientSettings
from .types import FrozenConfig

logger = logging.getLogger(__name__)


def resolve_config(**overrides: Any) -> FrozenConfig:
    """Resolve settings into a ``FrozenConfig``.

    Args:
        **overrides: Field values that take precedence over the environment.
            ``None`` values are ignored so callers can forward optional
            arguments unchanged.

    Returns:
        The frozen configuration.

    Raises:
        ConfigurationError: If any value fails validation.
    """
    explicit = {k: v for k, v in overrides.items() if v is not None}
    try:
        settings = ClientSettings(**explicit)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid client configuration: {e}") from e
    logger.debug("Resolved client configuration for %s", settings.base_url)
    return FrozenConfig(**settings.to_dict())


__all__ = ["ClientSettings", "FrozenConfig", "resolve_config"]
