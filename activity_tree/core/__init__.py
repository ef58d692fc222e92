"""Core aggregation engine: fetching, hierarchy, tree building and analytics."""
