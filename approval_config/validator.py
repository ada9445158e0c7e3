"""
Configuration Validator (``approval_config.validator``).

Responsibility
--------------
Validates an ``ApprovalConfigurationSet`` before it is compiled, so a bad
template is caught when configuration is loaded rather than when a user
submits a draft.

Invariants enforced
-------------------
* Category codes and template ids are unique.
* Every template references a declared category, and every category's
  default template exists and belongs to it.
* At most one template per category is flagged ``is_default``.
* Every template passes the same route validation the instantiator runs
  (gating stage present, contiguous order, approvers on gating stages,
  no duplicate approvers) and uses known enum values and UUID user ids.
* Engine settings are in range.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> configuration
  MUST NOT be compiled.
* Validation warnings  -> configuration may be compiled but should be
  reviewed.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from uuid import UUID

from approval_config.bridges import build_route_template
from approval_config.schema import ApprovalConfigurationSet
from approval_engines.validation import validate_route_spec
from approval_kernel.exceptions import ValidationError


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
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


def validate_configuration(config: ApprovalConfigurationSet) -> ConfigValidationResult:
    """Validate a configuration set and collect every problem found."""
    result = ConfigValidationResult()
    _validate_uniqueness(config, result)
    _validate_references(config, result)
    _validate_templates(config, result)
    _validate_engine_settings(config, result)
    return result


def _validate_uniqueness(
    config: ApprovalConfigurationSet, result: ConfigValidationResult,
) -> None:
    for code, count in Counter(c.code for c in config.categories).items():
        if count > 1:
            result.add_error(f"Category '{code}' is declared {count} times")
    for template_id, count in Counter(t.template_id for t in config.templates).items():
        if count > 1:
            result.add_error(f"Template '{template_id}' is declared {count} times")
    defaults = Counter(t.category for t in config.templates if t.is_default)
    for category, count in defaults.items():
        if count > 1:
            result.add_error(
                f"Category '{category}' has {count} templates flagged is_default"
            )


def _validate_references(
    config: ApprovalConfigurationSet, result: ConfigValidationResult,
) -> None:
    categories = {c.code: c for c in config.categories}
    templates = {t.template_id: t for t in config.templates}

    for template in config.templates:
        if template.category not in categories:
            result.add_error(
                f"Template '{template.template_id}' references unknown "
                f"category '{template.category}'"
            )

    for category in config.categories:
        if category.default_template is None:
            has_flagged = any(
                t.category == category.code and t.is_default for t in config.templates
            )
            if not has_flagged and category.is_active:
                result.add_warning(
                    f"Category '{category.code}' has no default template; "
                    "submissions must name a route"
                )
            continue
        template = templates.get(category.default_template)
        if template is None:
            result.add_error(
                f"Category '{category.code}' default template "
                f"'{category.default_template}' does not exist"
            )
        elif template.category != category.code:
            result.add_error(
                f"Category '{category.code}' default template "
                f"'{category.default_template}' belongs to '{template.category}'"
            )


def _validate_templates(
    config: ApprovalConfigurationSet, result: ConfigValidationResult,
) -> None:
    for template_def in config.templates:
        try:
            template = build_route_template(template_def)
        except ValueError as exc:
            result.add_error(f"Template '{template_def.template_id}': {exc}")
            continue
        try:
            validate_route_spec(template.stages)
        except ValidationError as exc:
            result.add_error(f"Template '{template_def.template_id}': {exc}")


def _validate_engine_settings(
    config: ApprovalConfigurationSet, result: ConfigValidationResult,
) -> None:
    engine = config.engine
    if engine.max_attempts < 1:
        result.add_error(f"engine.max_attempts must be >= 1, got {engine.max_attempts}")
    if engine.retry_backoff_ms < 0:
        result.add_error(
            f"engine.retry_backoff_ms must be >= 0, got {engine.retry_backoff_ms}"
        )
    try:
        UUID(engine.system_actor_id)
    except ValueError:
        result.add_error(
            f"engine.system_actor_id is not a UUID: {engine.system_actor_id!r}"
        )
