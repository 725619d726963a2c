"""
Configuration Validator (``dsm_config.validator``).

Responsibility
--------------
Validates a ``WorkflowConfigSet`` before it is handed to callers, so that
no document instantiated from a template can fail the store's
configuration checks.

Architecture position
---------------------
**Config layer** -- load-time validation.  Reuses the pure
``dsm_engines.config_rules`` checks for each template.

Invariants enforced
-------------------
* Group names are 2-50 characters of letters, digits, spaces, hyphens
  and underscores, and unique.
* Template ids are unique and every template names a declared group.
* Every template's requirements and role slots pass
  ``validate_document_config``.

Failure modes
-------------
* Errors (``ConfigValidationResult.errors``) -> the set MUST NOT be used.
* Warnings -> usable, but should be reviewed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from dsm_config.schema import DocumentTemplateDef, WorkflowConfigSet
from dsm_engines.config_rules import validate_document_config
from dsm_kernel.domain.workflow import RoleAssignment

GROUP_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s_-]+$")
GROUP_NAME_MIN = 2
GROUP_NAME_MAX = 50


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_group_name(name: str) -> str | None:
    """Return an error message for an invalid group name, else None."""
    if len(name) < GROUP_NAME_MIN:
        return f"Group name {name!r} must be at least {GROUP_NAME_MIN} characters"
    if len(name) > GROUP_NAME_MAX:
        return f"Group name {name!r} must be at most {GROUP_NAME_MAX} characters"
    if not GROUP_NAME_PATTERN.match(name):
        return (
            f"Group name {name!r} may only contain letters, numbers, "
            "spaces, hyphens and underscores"
        )
    return None


def validate_configuration(config: WorkflowConfigSet) -> ConfigValidationResult:
    """Validate a configuration set; errors block its use."""
    result = ConfigValidationResult()

    _validate_groups(config, result)
    _validate_template_ids(config, result)
    _validate_template_groups(config, result)
    _validate_template_rules(config, result)
    _validate_logging(config, result)

    return result


def _validate_groups(config: WorkflowConfigSet, result: ConfigValidationResult) -> None:
    seen: set[str] = set()
    for group in config.groups:
        error = validate_group_name(group.name)
        if error:
            result.add_error(error)
        if group.name in seen:
            result.add_error(f"Duplicate group: {group.name!r} appears more than once")
        seen.add(group.name)


def _validate_template_ids(config: WorkflowConfigSet, result: ConfigValidationResult) -> None:
    seen: set[str] = set()
    for template in config.document_templates:
        if template.template_id in seen:
            result.add_error(
                f"Duplicate template: {template.template_id!r} appears more than once"
            )
        seen.add(template.template_id)


def _validate_template_groups(
    config: WorkflowConfigSet, result: ConfigValidationResult
) -> None:
    declared = {g.name for g in config.groups}
    used: set[str] = set()
    for template in config.document_templates:
        used.add(template.group)
        if template.group not in declared:
            result.add_error(
                f"Template {template.template_id!r} references undeclared "
                f"group {template.group!r}"
            )
    for name in sorted(declared - used):
        result.add_warning(f"Group {name!r} has no document templates")


def _placeholder_assignments(template: DocumentTemplateDef) -> tuple[RoleAssignment, ...]:
    # Stand-in identities so identity checks do not fire on role slots.
    return tuple(
        RoleAssignment(
            user_id=f"slot-{slot.signing_order}",
            email=f"{slot.role.value.lower()}@template.invalid",
            display_name=slot.role.value,
            role=slot.role,
            signing_order=slot.signing_order,
        )
        for slot in template.roles
    )


def _validate_template_rules(
    config: WorkflowConfigSet, result: ConfigValidationResult
) -> None:
    for template in config.document_templates:
        issues = validate_document_config(
            template.requirements, _placeholder_assignments(template),
        )
        for issue in issues:
            result.add_error(
                f"Template {template.template_id!r}: {issue.message} ({issue.code})"
            )


def _validate_logging(config: WorkflowConfigSet, result: ConfigValidationResult) -> None:
    if not isinstance(logging.getLevelName(config.logging.level), int):
        result.add_error(f"Unknown logging level: {config.logging.level!r}")
