"""
approval_kernel.services.route_instantiator -- Route materialization.

Responsibility:
    Resolve a route request (template id, explicit stages, or the draft
    category's default template), validate it, and copy it into the
    draft's runtime Route / Stage / Approver rows.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and the pure
    validation engine.  Flushes only; the caller owns the transaction.

Invariants enforced:
    - Detached copy: runtime rows are built from template values; nothing
      references the template afterwards, so later template edits never
      reach in-flight drafts.
    - One route per draft (checked here and by UNIQUE(draft_id)).
    - All stages and approvers start PENDING; nothing is activated here.

Failure modes:
    - InvalidRouteSpecError when both a template id and stages are given.
    - TemplateNotFoundError for an unknown template or a category without
      a default template.
    - Validation errors from approval_engines.validation.
    - RouteAlreadyExistsError if the draft already owns a route.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from approval_engines.validation import validate_route_spec
from approval_kernel.domain.approval import (
    ApproverStatus,
    RouteSpec,
    StageSpec,
    StageStatus,
    TemplateProvider,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import (
    DraftNotFoundError,
    InvalidRouteSpecError,
    RouteAlreadyExistsError,
    TemplateNotFoundError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.models.draft import (
    ApproverModel,
    DraftModel,
    RouteModel,
    StageModel,
)

logger = get_logger("services.route_instantiator")


class RouteInstantiator:
    """Creates the runtime route of a draft."""

    def __init__(
        self,
        session: Session,
        template_provider: TemplateProvider | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._templates = template_provider
        self._clock = clock or SystemClock()

    def resolve(
        self,
        category: str,
        route_spec: RouteSpec | None,
    ) -> tuple[str | None, tuple[StageSpec, ...]]:
        """Resolve a route request to ``(template_id, validated stages)``."""
        route_spec = route_spec or RouteSpec()

        if route_spec.template_id is not None and route_spec.stages:
            raise InvalidRouteSpecError("give either a template id or stages, not both")

        if route_spec.stages:
            return None, validate_route_spec(route_spec.stages)

        if self._templates is None:
            raise TemplateNotFoundError(
                route_spec.template_id or f"default template for {category!r}"
            )

        if route_spec.template_id is not None:
            template = self._templates.get_template_by_id(route_spec.template_id)
            if template is None:
                raise TemplateNotFoundError(route_spec.template_id)
            if template.category != category:
                raise InvalidRouteSpecError(
                    f"template {template.template_id!r} belongs to category "
                    f"{template.category!r}, not {category!r}"
                )
        else:
            template = self._templates.get_template(category)
            if template is None:
                raise TemplateNotFoundError(f"default template for {category!r}")

        return template.template_id, validate_route_spec(template.stages)

    def instantiate(
        self,
        draft_id: UUID,
        route_spec: RouteSpec | None = None,
    ) -> RouteModel:
        """Create the draft's route with every stage and approver PENDING."""
        draft = self._session.get(DraftModel, draft_id)
        if draft is None:
            raise DraftNotFoundError(str(draft_id))

        existing = self._session.execute(
            select(RouteModel.id).where(RouteModel.draft_id == draft_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise RouteAlreadyExistsError(str(draft_id), str(existing))

        template_id, stages = self.resolve(draft.category, route_spec)

        route = RouteModel(
            draft_id=draft_id,
            template_id=template_id,
            created_at=self._clock.now(),
        )
        for spec in stages:
            stage = StageModel(
                order_index=spec.order_index,
                name=spec.name,
                stage_type=spec.stage_type.value,
                mode=spec.mode.value,
                rule=spec.rule.value,
                status=StageStatus.PENDING.value,
            )
            for approver in spec.approvers:
                stage.approvers.append(ApproverModel(
                    user_id=approver.user_id,
                    order_index=approver.order_index,
                    status=ApproverStatus.PENDING.value,
                    comment="",
                ))
            route.stages.append(stage)

        draft.route = route
        self._session.add(route)
        self._session.flush()

        logger.info(
            "route_instantiated",
            extra={
                "draft_id": str(draft_id),
                "route_id": str(route.id),
                "template_id": template_id,
                "stage_count": len(stages),
                "approver_count": sum(len(s.approvers) for s in stages),
            },
        )
        return route
