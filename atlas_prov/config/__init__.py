"""Configuration loading, models, and logging setup."""

from atlas_prov.config.loader import (
    ConfigError,
    configure_logging,
    load_config,
    resolve_log_level,
)
from atlas_prov.config.models import (
    AtlasApiConfig,
    CallbackDelays,
    ConfigFile,
    ProvisionerConfig,
    ReservedLabel,
)

__all__ = [
    "AtlasApiConfig",
    "CallbackDelays",
    "ConfigError",
    "ConfigFile",
    "ProvisionerConfig",
    "ReservedLabel",
    "configure_logging",
    "load_config",
    "resolve_log_level",
]
