"""Persistence models for the approval kernel."""

from approval_kernel.models.action import ActionModel
from approval_kernel.models.draft import (
    ApproverModel,
    DraftModel,
    RouteModel,
    StageModel,
)

__all__ = [
    "ActionModel",
    "ApproverModel",
    "DraftModel",
    "RouteModel",
    "StageModel",
]
