"""
Activity Tree Backend - HTTP surface for the aggregation engine.

This package provides a FastAPI backend that serves the aggregated
activity tree and per-item health analytics to dashboards and scripts.
"""
