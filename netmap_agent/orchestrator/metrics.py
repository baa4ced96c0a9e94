from __future__ import annotations

from prometheus_client import Counter, Histogram

NODE_INVOCATIONS = Counter(
    "netmap_workflow_node_invocations_total",
    "Turn workflow node invocations",
    labelnames=("node", "status"),
)

NODE_LATENCY = Histogram(
    "netmap_workflow_node_latency_seconds",
    "Turn workflow node latency in seconds",
    labelnames=("node",),
)

STREAM_DURATION = Histogram(
    "netmap_llm_stream_duration_seconds",
    "Wall time spent consuming one streamed LLM response",
    labelnames=("status",),
)

TOOL_INVOCATIONS = Counter(
    "netmap_tool_resolutions_total",
    "Tool invocations resolved by the workflow",
    labelnames=("tool", "status"),
)

TOOL_LATENCY = Histogram(
    "netmap_tool_resolution_latency_seconds",
    "Per-invocation resolution latency in seconds",
    labelnames=("tool",),
)
