"""Read-only selectors for the approval kernel."""

from approval_kernel.selectors.base import BaseSelector
from approval_kernel.selectors.draft_selector import DraftSelector

__all__ = ["BaseSelector", "DraftSelector"]
