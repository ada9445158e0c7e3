"""
Bridges from configuration definitions to kernel domain types.

Responsibility:
    Translate schema dataclasses (raw strings, as authored in YAML) into the
    frozen value objects the kernel consumes: ``RouteTemplate``,
    ``StageSpec``, ``ApproverSpec`` and ``CategoryInfo``.

Architecture position:
    Configuration layer.  Imports kernel domain types; the kernel never
    imports from here.

Failure modes:
    - ValueError for an unknown stage type, mode or rule, or a user id that
      is not a UUID.
"""

from __future__ import annotations

from uuid import UUID

from approval_config.schema import (
    ApproverDef,
    CategoryDef,
    RouteTemplateDef,
    StageDef,
)
from approval_kernel.domain.approval import (
    ApproverSpec,
    CategoryInfo,
    RouteTemplate,
    StageMode,
    StageRule,
    StageSpec,
    StageType,
)


def build_approver_spec(approver: ApproverDef) -> ApproverSpec:
    return ApproverSpec(user_id=UUID(approver.user_id), order_index=approver.order_index)


def build_stage_spec(stage: StageDef) -> StageSpec:
    """Build a kernel StageSpec, parsing the enum fields by value."""
    return StageSpec(
        name=stage.name,
        stage_type=StageType(stage.type),
        mode=StageMode(stage.mode),
        rule=StageRule(stage.rule),
        order_index=stage.order_index,
        approvers=tuple(build_approver_spec(a) for a in stage.approvers),
    )


def build_route_template(template: RouteTemplateDef) -> RouteTemplate:
    return RouteTemplate(
        template_id=template.template_id,
        name=template.name,
        category=template.category,
        stages=tuple(build_stage_spec(s) for s in template.stages),
        is_default=template.is_default,
        description=template.description,
    )


def build_category_info(
    category: CategoryDef,
    templates: tuple[RouteTemplateDef, ...] = (),
) -> CategoryInfo:
    """Build CategoryInfo, falling back to a template flagged ``is_default``."""
    default_template = category.default_template
    if default_template is None:
        for template in templates:
            if template.category == category.code and template.is_default:
                default_template = template.template_id
                break
    return CategoryInfo(
        code=category.code,
        name=category.name,
        description=category.description,
        is_active=category.is_active,
        default_template=default_template,
    )
