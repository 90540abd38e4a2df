"""
Team specifications and the pure functions over them.

Contains the agent/environment spec models, the resource allowlist
enforcer, the dependency graph scheduler and label editing helpers.
"""
