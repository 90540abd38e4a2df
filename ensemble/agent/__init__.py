"""
Orchestration of agent teams.

The planner designs and edits team specs; the orchestrator executes them
level by level, fanning agents of one level out concurrently, synthesizes
their outputs and records every event for replay.
"""
