"""Kernel services. Each takes a Session and flushes; callers commit."""

from approval_kernel.services.action_recorder import ActionRecorder
from approval_kernel.services.route_instantiator import RouteInstantiator
from approval_kernel.services.stage_executor import StageExecutor
from approval_kernel.services.status_aggregator import StatusAggregator

__all__ = [
    "ActionRecorder",
    "RouteInstantiator",
    "StageExecutor",
    "StatusAggregator",
]
