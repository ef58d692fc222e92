"""
Activity Tree - hierarchical activity analytics for a remote task tracker.

This package rebuilds the flat, paginated activity log of a task-tracking
service into a Project -> Section -> Item tree and derives per-item health
indicators from each item's event history.
"""
