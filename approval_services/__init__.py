"""
Approval Services - orchestration over the approval kernel.

The DraftManager is the callable surface for the web layer: it owns
transactions, per-draft locking, conflict retry and post-commit
status-change dispatch.
"""

from approval_services.draft_manager import DraftManager

__all__ = ["DraftManager"]
