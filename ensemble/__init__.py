"""
Ensemble: LLM-designed agent teams.

This package lets an LLM design a team of specialized agent roles for a
task, schedules them over their dependency graph, runs each level of the
graph concurrently against a streaming completion service, and synthesizes
their outputs into one deliverable. Every stage is reported as a typed event
that can be persisted and replayed.
"""

__version__ = "0.1.0"
