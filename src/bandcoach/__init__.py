"""
bandcoach: deterministic, spine-safe resistance-band session planner.

Builds 25-35 minute home sessions from a movement catalog, a versioned
knowledge base and a per-athlete progression state.
"""

__version__ = "0.1.0"
