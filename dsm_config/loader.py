"""
Configuration Loader (``dsm_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the typed
``dsm_config.schema`` dataclasses.  Runtime callers go through
``dsm_config.get_active_config()``; this module is the tooling beneath it.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on kernel domain
types only.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* Group names are normalized (trimmed, lower-cased) at parse time, and
  template group references are normalized the same way.
* ``compute_checksum`` is a deterministic SHA-256 over canonical JSON.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown role or requirement flag  -> ``ValueError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from dsm_config.schema import (
    DocumentTemplateDef,
    GroupDef,
    LoggingDef,
    RoleSlotDef,
    WorkflowConfigSet,
)
from dsm_kernel.domain.workflow import Role, WorkflowRequirements
from dsm_kernel.utils.hashing import hash_payload


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def normalize_group_name(name: str) -> str:
    return str(name).strip().lower()


def parse_group(data: dict[str, Any]) -> GroupDef:
    name = normalize_group_name(data["name"])
    return GroupDef(
        name=name,
        display_name=data.get("display_name") or name,
        description=data.get("description", ""),
        sort_order=int(data.get("sort_order", 0)),
    )


def parse_requirements(data: dict[str, Any] | None) -> WorkflowRequirements:
    """Parse requirement flags; unknown flags are an error, missing are False."""
    data = data or {}
    known = set(WorkflowRequirements.field_names())
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown requirement flags: {unknown}")
    return WorkflowRequirements(**{name: bool(value) for name, value in data.items()})


def parse_role_slot(data: dict[str, Any]) -> RoleSlotDef:
    raw_role = str(data["role"]).upper()
    try:
        role = Role(raw_role)
    except ValueError:
        raise ValueError(f"Unknown role: {data['role']!r}") from None
    return RoleSlotDef(role=role, signing_order=int(data["signing_order"]))


def parse_template(data: dict[str, Any]) -> DocumentTemplateDef:
    """
    Parse a ``DocumentTemplateDef`` from a dict.

    Raises:
        KeyError: if ``template_id``, ``name`` or ``group`` is missing.
    """
    return DocumentTemplateDef(
        template_id=data["template_id"],
        name=data["name"],
        group=normalize_group_name(data["group"]),
        requirements=parse_requirements(data.get("requirements")),
        roles=tuple(parse_role_slot(r) for r in data.get("roles", [])),
    )


def parse_config_set(data: dict[str, Any]) -> WorkflowConfigSet:
    """Parse a complete configuration set from its root dict."""
    logging_data = data.get("logging") or {}
    return WorkflowConfigSet(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        groups=tuple(parse_group(g) for g in data.get("groups", [])),
        document_templates=tuple(
            parse_template(t) for t in data.get("document_templates", [])
        ),
        logging=LoggingDef(level=str(logging_data.get("level", "INFO")).upper()),
        checksum=compute_checksum(data),
    )


def load_config_set(path: Path) -> WorkflowConfigSet:
    return parse_config_set(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of the canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    return hash_payload(data)
