"""Configuration file loading and validation.

Loads a YAML configuration file, expands ``${ENV_VAR}`` placeholders,
and validates against the Pydantic models defined in :mod:`schema`.

The public API is :func:`load_conduit_config`, which returns the full
:class:`ConduitConfig`, and :func:`parse_provider_records`, which turns
host-supplied JSON-shaped records into :class:`ProviderConfig` objects.
"""

import logging
import os
from typing import Any, Dict, Iterable, List, Mapping

import yaml
from pydantic import ValidationError

from mcp_conduit.config.expand import expand_env_vars
from mcp_conduit.config.schema import ConduitConfig, ProviderConfig, validate_provider_config
from mcp_conduit.display.logging_config import secret_redaction_filter
from mcp_conduit.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Recognised config file extensions.
_YAML_EXTS = frozenset({".yaml", ".yml"})


def _read_config_file(cfg_fpath: str) -> Dict[str, Any]:
    """Read and parse a YAML config file from *cfg_fpath*.

    Raises :class:`ConfigurationError` on I/O or parse errors.
    """
    ext = os.path.splitext(cfg_fpath)[1].lower()
    if ext not in _YAML_EXTS:
        raise ConfigurationError(
            f"Unsupported config file extension '{ext}'. "
            "Only YAML files (.yaml, .yml) are supported."
        )

    try:
        with open(cfg_fpath, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)
    except Exception as exc:
        raise ConfigurationError(f"Error reading configuration file: {cfg_fpath}\n  {exc}") from exc

    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        raise ConfigurationError(
            "Top-level configuration content must be a YAML mapping (dictionary)."
        )
    return raw_data


def _format_validation_errors(exc: ValidationError) -> str:
    """Format Pydantic validation errors into a readable multi-line string."""
    lines: List[str] = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        lines.append(f"  • {loc}: {err['msg']}")
    return "\n".join(lines)


def _register_secrets(provider: ProviderConfig) -> None:
    """Scrub env override and header values from log output."""
    for values in (provider.env, provider.headers):
        for value in (values or {}).values():
            secret_redaction_filter.register(value)


def _report_problems(provider: ProviderConfig) -> None:
    for problem in validate_provider_config(provider):
        logger.warning(
            "[%s] Provider config problem: %s. The provider will fail to connect.",
            provider.name,
            problem,
        )


# ── Public API ───────────────────────────────────────────────────────────


def load_conduit_config(cfg_fpath: str) -> ConduitConfig:
    """Load, expand, validate, and return the full configuration.

    Steps:
        1. Read YAML file
        2. Expand ``${VAR}`` environment variable references
        3. Validate against :class:`ConduitConfig` (Pydantic)
        4. Log per-provider problems that will surface at connect time

    Raises:
        ConfigurationError: On file I/O errors, parse errors, or
            validation failures (all errors reported at once).
    """
    logger.debug("Loading configuration file: %s", cfg_fpath)

    if not os.path.exists(cfg_fpath):
        raise ConfigurationError(f"Configuration file does not exist: {cfg_fpath}")

    raw_data = _read_config_file(cfg_fpath)
    raw_data = expand_env_vars(raw_data)

    try:
        config = ConduitConfig.model_validate(raw_data)
    except ValidationError as exc:
        error_summary = _format_validation_errors(exc)
        raise ConfigurationError(
            f"Configuration validation failed ({len(exc.errors())} error(s)):\n" f"{error_summary}"
        ) from exc

    for provider in config.providers:
        _register_secrets(provider)
        _report_problems(provider)

    logger.info(
        "Configuration '%s' loaded (v%s). %d provider(s) configured.",
        cfg_fpath,
        config.version,
        len(config.providers),
    )
    return config


def parse_provider_records(records: Iterable[Mapping[str, Any]]) -> List[ProviderConfig]:
    """Validate host-supplied provider records one by one.

    A record that cannot be parsed at all (e.g. no ``name``) is logged and
    skipped; the remaining records are still returned.
    """
    providers: List[ProviderConfig] = []
    for index, record in enumerate(records):
        try:
            provider = ProviderConfig.model_validate(expand_env_vars(dict(record)))
        except ValidationError as exc:
            logger.error(
                "Provider record #%d is invalid and was skipped:\n%s",
                index,
                _format_validation_errors(exc),
            )
            continue
        _register_secrets(provider)
        _report_problems(provider)
        providers.append(provider)
    return providers
