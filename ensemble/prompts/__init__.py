"""Prompt text for the planner, the agents and the synthesis stage."""
