"""
Streaming completion client and models.

This package is the completion-service collaborator of the orchestration
core: it normalizes provider chunks into thinking/text/tool-call events.
"""
