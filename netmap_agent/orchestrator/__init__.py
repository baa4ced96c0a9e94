from __future__ import annotations

"""
Orchestrator package for the netmap agent.

This package wires together:
- Turn state types
- LangGraph turn-resolution workflow
- Nodes (ingress, tool resolution, change proposal, response)
- Chat turn service (stream -> workflow -> pending state)
- Approval service (pending state -> topology registry)

Import submodules directly (`from .workflow import build_workflow`); the
streaming layer imports the metrics modules from here.
"""
