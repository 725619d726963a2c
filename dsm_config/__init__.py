"""
dsm_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the way to obtain document group and template configuration
    at runtime through ``get_active_config()``.  YAML loading is internal
    tooling beneath it.

Architecture position:
    Configuration -- YAML-driven, load-time validation.  Sits above
    ``dsm_kernel`` and ``dsm_engines`` and below ``dsm_services``.  The
    kernel MUST NEVER import from ``dsm_config``; ``bridges`` translates
    configuration into kernel domain objects.

Invariants enforced:
    - Validation: a configuration set with errors is never returned.
    - Deterministic checksum: the same YAML always yields the same
      ``WorkflowConfigSet.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- parse or validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``DSM_CONFIG_TRACE`` log entry with the config id, version, checksum
    and group / template counts.
"""

from __future__ import annotations

import logging
from pathlib import Path

from dsm_config.loader import load_config_set
from dsm_config.schema import WorkflowConfigSet
from dsm_config.validator import validate_configuration
from dsm_kernel.logging_config import configure_logging

_logger = logging.getLogger("dsm_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> WorkflowConfigSet:
    """Load, validate and return a configuration set.

    Args:
        config_path: Override path to a YAML configuration set.
            Defaults to dsm_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If parsing or validation fails.
    """
    path = config_path or _DEFAULT_CONFIG_PATH
    config = load_config_set(path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_warning", extra={"warning": warning})

    _logger.info(
        "DSM_CONFIG_TRACE",
        extra={
            "trace_type": "DSM_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "group_count": len(config.groups),
            "template_count": len(config.document_templates),
        },
    )
    return config


def configure_logging_from_config(
    config: WorkflowConfigSet,
    *,
    stream=None,
    handler: logging.Handler | None = None,
) -> None:
    """Configure the dsm_kernel loggers at the set's ``logging.level``.

    Same idempotence as ``configure_logging``: once logging is configured,
    later calls change nothing.
    """
    configure_logging(
        level=logging.getLevelName(config.logging.level),
        stream=stream,
        handler=handler,
    )


__all__ = ["WorkflowConfigSet", "configure_logging_from_config", "get_active_config"]
