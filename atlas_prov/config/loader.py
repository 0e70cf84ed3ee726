"""Configuration loading and logging setup.

Precedence (highest first):

1. ``ATLAS_PROV_*`` environment variables (and ``LOG_LEVEL``)
2. The ``provisioner:`` section of the YAML file
3. Model defaults

The YAML path is the explicit *path* argument, else ``ATLAS_PROV_CONFIG``.
A missing file is not an error.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from atlas_prov.config.models import ConfigFile, ProvisionerConfig

logger = logging.getLogger(__name__)

ENV_CONFIG_PATH = "ATLAS_PROV_CONFIG"
ENV_LOG_LEVEL = "LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# env var -> (section, field); section None means top level
_ENV_OVERRIDES = {
    "ATLAS_PROV_BASE_URL": ("atlas", "base_url"),
    "ATLAS_PROV_API_VERSION": ("atlas", "api_version"),
    "ATLAS_PROV_USER_AGENT": ("atlas", "user_agent"),
    "ATLAS_PROV_DEFAULT_TIMEOUT": (None, "default_timeout"),
    "ATLAS_PROV_DELETE_ON_CREATE_TIMEOUT": (None, "delete_on_create_timeout"),
    "ATLAS_PROV_SECRET_PREFIX": (None, "secret_prefix"),
    "ATLAS_PROV_AWS_REGION": (None, "aws_region"),
    ENV_LOG_LEVEL: (None, "log_level"),
}


class ConfigError(RuntimeError):
    """Configuration file or environment could not be parsed."""


def load_config(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ProvisionerConfig:
    """Load :class:`ProvisionerConfig` from YAML plus environment overrides.

    Raises :class:`ConfigError` when the YAML is unreadable or a value fails
    validation.
    """
    env = os.environ if env is None else env
    path = path or env.get(ENV_CONFIG_PATH) or None

    raw: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        if path.exists():
            try:
                with open(path, encoding="utf-8") as fh:
                    raw = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
            logger.debug("Loaded provisioner config from %s", path)
        else:
            logger.debug("Config file %s not found; using defaults", path)

    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be a mapping, got {type(raw).__name__}")

    section = dict(raw.get("provisioner") or {})
    for var, (group, name) in _ENV_OVERRIDES.items():
        value = env.get(var)
        if value is None or value == "":
            continue
        if group is None:
            section[name] = value
        else:
            nested = dict(section.get(group) or {})
            nested[name] = value
            section[group] = nested

    try:
        return ConfigFile(provisioner=section).provisioner
    except ValidationError as exc:
        raise ConfigError(f"Invalid provisioner configuration: {exc}") from exc


def resolve_log_level(level: Optional[str]) -> int:
    """Translate a level name to a :mod:`logging` constant.

    Unknown names fall back to ``INFO`` with an error log.
    """
    name = (level or DEFAULT_LOG_LEVEL).strip().upper()
    if name == "WARN":
        name = "WARNING"
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        logger.error(
            "error parsing %s=%r; falling back to %s",
            ENV_LOG_LEVEL,
            level,
            DEFAULT_LOG_LEVEL,
        )
        return logging.INFO
    return resolved


def configure_logging(level: Optional[str] = None) -> int:
    """Configure root logging once per process and return the numeric level."""
    numeric = resolve_log_level(level or os.environ.get(ENV_LOG_LEVEL))
    logging.basicConfig(level=numeric, format=_LOG_FORMAT)
    logging.getLogger().setLevel(numeric)
    # botocore is noisy at DEBUG
    logging.getLogger("botocore").setLevel(max(numeric, logging.INFO))
    return numeric
