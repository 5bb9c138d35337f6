"""
Entry Workflow

Composes expiration selection, strike selection and sizing into an entry
plan, and builds the Position aggregate after a confirmed fill.
"""

from optengine.workflows.entry import EntryPlan, EntryPlanner, EntryResult, build_position

__all__ = [
    "EntryPlan",
    "EntryPlanner",
    "EntryResult",
    "build_position",
]
