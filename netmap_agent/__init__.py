from __future__ import annotations

"""
NetMap assistant service.

Turns streamed LLM tool invocations into reviewable, user-approved
topology mutations (devices, connections, VLANs).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
