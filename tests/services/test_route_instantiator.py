"""
Tests for the RouteInstantiator (``approval_kernel.services.route_instantiator``).

Covers:
- Default, named and explicit routes
- Detached copies: templates are never shared with the runtime route
- Invalid route requests rejected before anything is written
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from approval_kernel.domain.approval import (
    ApproverStatus,
    DraftStatus,
    RouteSpec,
    StageStatus,
    StageType,
)
from approval_kernel.exceptions import (
    DraftNotFoundError,
    InvalidRouteSpecError,
    NoGatingStageError,
    RouteAlreadyExistsError,
    TemplateNotFoundError,
)
from approval_kernel.models import ApproverModel, DraftModel, RouteModel, StageModel
from approval_kernel.services.route_instantiator import RouteInstantiator
from tests.factories import DEPT_MANAGER, DIRECTOR, FINANCE, make_stage, make_users


def add_draft(session, clock, category="expense"):
    draft = DraftModel(
        owner_id=uuid4(), category=category, title="", content={},
        status=DraftStatus.DRAFT.value, created_at=clock.now(), updated_at=clock.now(),
    )
    session.add(draft)
    session.flush()
    return draft


@pytest.fixture
def instantiator(session, template_store, clock):
    return RouteInstantiator(session, template_store, clock)


class TestInstantiate:

    def test_default_template(self, session, clock, instantiator):
        draft = add_draft(session, clock)
        route = instantiator.instantiate(draft.id)

        assert route.template_id == "expense-standard"
        assert draft.route is route
        info = route.to_dto()
        assert [s.stage_type for s in info.stages] == [StageType.COOPERATION, StageType.APPROVAL]
        assert [a.user_id for a in info.stages[1].approvers] == [DEPT_MANAGER, DIRECTOR]
        assert info.stages[0].approvers[0].user_id == FINANCE
        assert all(s.status == StageStatus.PENDING for s in info.stages)
        assert all(a.status == ApproverStatus.PENDING for a in info.approvers)

    def test_named_template(self, session, clock, instantiator):
        draft = add_draft(session, clock)
        route = instantiator.instantiate(draft.id, RouteSpec.from_template("expense-small"))
        assert route.template_id == "expense-small"
        assert len(route.stages) == 1

    def test_explicit_stages(self, session, clock, instantiator):
        draft = add_draft(session, clock)
        users = make_users(2)
        spec = RouteSpec.explicit([
            make_stage(1, users),
            make_stage(2, [], stage_type=StageType.RECEPTION),
        ])
        route = instantiator.instantiate(draft.id, spec)
        assert route.template_id is None
        assert [a.user_id for a in route.stages[0].approvers] == users
        assert route.stages[1].approvers == []

    def test_runtime_rows_are_independent_of_template(self, session, clock, instantiator, template_store):
        first = instantiator.instantiate(add_draft(session, clock).id)
        second = instantiator.instantiate(add_draft(session, clock).id)
        assert {s.id for s in first.stages}.isdisjoint({s.id for s in second.stages})
        first.stages[0].status = StageStatus.ACTIVE.value
        session.flush()
        assert second.stages[0].status == StageStatus.PENDING.value
        template = template_store.get_template("expense")
        assert len(template.stages) == 2

    def test_route_already_exists(self, session, clock, instantiator):
        draft = add_draft(session, clock)
        instantiator.instantiate(draft.id)
        with pytest.raises(RouteAlreadyExistsError):
            instantiator.instantiate(draft.id)

    def test_unknown_draft(self, instantiator):
        with pytest.raises(DraftNotFoundError):
            instantiator.instantiate(uuid4())


class TestRejectedRequests:

    def count_rows(self, session):
        return sum(
            session.scalar(select(func.count()).select_from(model))
            for model in (RouteModel, StageModel, ApproverModel)
        )

    def test_invalid_explicit_route_writes_nothing(self, session, clock, instantiator):
        draft = add_draft(session, clock)
        spec = RouteSpec.explicit([make_stage(1, make_users(1), stage_type=StageType.REFERENCE)])
        with pytest.raises(NoGatingStageError):
            instantiator.instantiate(draft.id, spec)
        assert self.count_rows(session) == 0

    def test_template_and_stages_together(self, session, clock, instantiator):
        draft = add_draft(session, clock)
        spec = RouteSpec(template_id="expense-small", stages=(make_stage(1, make_users(1)),))
        with pytest.raises(InvalidRouteSpecError):
            instantiator.instantiate(draft.id, spec)

    def test_unknown_template(self, session, clock, instantiator):
        draft = add_draft(session, clock)
        with pytest.raises(TemplateNotFoundError):
            instantiator.instantiate(draft.id, RouteSpec.from_template("missing"))

    def test_template_from_other_category(self, session, clock, instantiator):
        draft = add_draft(session, clock, category="leave")
        with pytest.raises(InvalidRouteSpecError, match="belongs to category"):
            instantiator.instantiate(draft.id, RouteSpec.from_template("expense-small"))

    def test_category_without_default(self, session, clock, instantiator):
        draft = add_draft(session, clock, category="business_trip")
        with pytest.raises(TemplateNotFoundError):
            instantiator.instantiate(draft.id)

    def test_no_template_provider(self, session, clock):
        draft = add_draft(session, clock)
        with pytest.raises(TemplateNotFoundError):
            RouteInstantiator(session, None, clock).instantiate(draft.id)
