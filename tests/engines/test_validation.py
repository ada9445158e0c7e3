"""
Tests for route specification validation (``approval_engines.validation``).

Covers:
- Empty routes and routes without a gating stage
- Stage order: duplicates and gaps
- Gating stages without approvers; notify-only stages without recipients
- Duplicate users and approver order normalization
"""

from dataclasses import replace

import pytest

from approval_engines.validation import validate_route_spec
from approval_kernel.domain.approval import ApproverSpec, StageMode, StageType
from approval_kernel.exceptions import (
    DuplicateApproverError,
    EmptyApproverListError,
    InvalidRouteSpecError,
    NoGatingStageError,
    StageOrderError,
    ValidationError,
)
from tests.factories import make_stage, make_users


class TestRouteShape:

    def test_empty_route_rejected(self):
        with pytest.raises(InvalidRouteSpecError):
            validate_route_spec([])

    def test_single_approval_stage_accepted(self):
        users = make_users(1)
        result = validate_route_spec([make_stage(1, users)])
        assert len(result) == 1
        assert result[0].approvers[0].user_id == users[0]

    def test_notify_only_route_has_no_gating_stage(self):
        stages = [
            make_stage(1, make_users(1), stage_type=StageType.REFERENCE),
            make_stage(2, make_users(1), stage_type=StageType.CIRCULATION),
        ]
        with pytest.raises(NoGatingStageError) as exc_info:
            validate_route_spec(stages)
        assert exc_info.value.code == "NO_GATING_STAGE"

    def test_cooperation_counts_as_gating(self):
        stages = [make_stage(1, make_users(2), stage_type=StageType.COOPERATION,
                             mode=StageMode.PARALLEL)]
        assert validate_route_spec(stages)[0].stage_type == StageType.COOPERATION

    def test_all_validation_errors_share_category(self):
        with pytest.raises(ValidationError):
            validate_route_spec([make_stage(1, [], stage_type=StageType.RECEPTION)])


class TestStageOrder:

    def test_stages_sorted_by_order_index(self):
        second = make_stage(2, make_users(1), name="Second")
        first = make_stage(1, make_users(1), name="First")
        result = validate_route_spec([second, first])
        assert [s.name for s in result] == ["First", "Second"]

    def test_duplicate_order_index(self):
        with pytest.raises(StageOrderError):
            validate_route_spec([make_stage(1, make_users(1)), make_stage(1, make_users(1))])

    def test_gap_in_order_index(self):
        with pytest.raises(StageOrderError) as exc_info:
            validate_route_spec([make_stage(1, make_users(1)), make_stage(3, make_users(1))])
        assert exc_info.value.order_indices == (1, 3)

    def test_order_must_start_at_one(self):
        with pytest.raises(StageOrderError):
            validate_route_spec([make_stage(2, make_users(1))])


class TestApprovers:

    def test_gating_stage_without_approvers(self):
        with pytest.raises(EmptyApproverListError) as exc_info:
            validate_route_spec([make_stage(1, [], name="Sign-off")])
        assert exc_info.value.order_index == 1

    def test_notify_only_stage_may_be_empty(self):
        stages = [
            make_stage(1, make_users(1)),
            make_stage(2, [], stage_type=StageType.RECEPTION),
        ]
        result = validate_route_spec(stages)
        assert result[1].approvers == ()

    def test_duplicate_user_in_stage(self):
        user = make_users(1)[0]
        with pytest.raises(DuplicateApproverError):
            validate_route_spec([make_stage(1, [user, user])])

    def test_same_user_in_two_stages_allowed(self):
        user = make_users(1)[0]
        result = validate_route_spec([make_stage(1, [user]), make_stage(2, [user])])
        assert len(result) == 2

    def test_missing_order_filled_from_position(self):
        users = make_users(3)
        result = validate_route_spec([make_stage(1, users)])
        assert [a.order_index for a in result[0].approvers] == [1, 2, 3]
        assert [a.user_id for a in result[0].approvers] == users

    def test_explicit_order_sorts_approvers(self):
        a, b = make_users(2)
        stage = replace(
            make_stage(1, []),
            approvers=(ApproverSpec(a, order_index=2), ApproverSpec(b, order_index=1)),
        )
        result = validate_route_spec([stage])
        assert [x.user_id for x in result[0].approvers] == [b, a]

    def test_duplicate_approver_order(self):
        a, b = make_users(2)
        stage = replace(
            make_stage(1, []),
            approvers=(ApproverSpec(a, order_index=1), ApproverSpec(b, order_index=1)),
        )
        with pytest.raises(InvalidRouteSpecError):
            validate_route_spec([stage])

    def test_approver_order_below_one(self):
        stage = replace(
            make_stage(1, []),
            approvers=(ApproverSpec(make_users(1)[0], order_index=0),),
        )
        with pytest.raises(InvalidRouteSpecError):
            validate_route_spec([stage])
