from __future__ import annotations

"""
Suggestion pipeline building blocks.

- matcher: duplicate detection against the topology
- placement: canvas position for new devices
- proposals: free-text change proposals (extract, validate, diff, apply)
- payloads: typed tool-invocation inputs
- resolution: turns a turn's tool invocations into reviewable suggestions
"""

from .matcher import find_existing
from .placement import PlacementEngine
from .proposals import (
    apply_nested_updates,
    build_change_proposal,
    build_diff,
    extract_proposal,
    validate_updates,
)

__all__ = [
    "PlacementEngine",
    "apply_nested_updates",
    "build_change_proposal",
    "build_diff",
    "extract_proposal",
    "find_existing",
    "validate_updates",
]
