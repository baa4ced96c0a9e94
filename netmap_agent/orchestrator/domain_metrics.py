from prometheus_client import Counter

TOOL_INVOCATIONS_RECEIVED = Counter(
    "netmap_tool_invocations_received_total",
    "Completed tool invocations emitted by the stream demultiplexer.",
    labelnames=("tool",),
)

TOOL_JSON_PARSE_FAILURES = Counter(
    "netmap_tool_json_parse_failures_total",
    "Tool blocks whose accumulated JSON could not be parsed (delivered with empty input).",
    labelnames=("tool",),
)

MALFORMED_TOOL_PAYLOADS = Counter(
    "netmap_malformed_tool_payloads_total",
    "Tool invocations rejected by payload validation.",
    labelnames=("tool",),
)

UNKNOWN_TOOLS = Counter(
    "netmap_unknown_tools_total",
    "Tool invocations with a name this service does not handle.",
)

DUPLICATES_SUPPRESSED = Counter(
    "netmap_duplicate_devices_suppressed_total",
    "Device suggestions matched to an existing device and not surfaced.",
)

SUGGESTIONS_SURFACED = Counter(
    "netmap_suggestions_surfaced_total",
    "Items surfaced for user approval, by kind.",
    labelnames=("kind",),
)

APPROVALS = Counter(
    "netmap_approvals_total",
    "User decisions on pending items.",
    labelnames=("kind", "decision"),
)

TURN_FAILURES = Counter(
    "netmap_turn_failures_total",
    "Chat turns marked failed, by reason.",
    labelnames=("reason",),
)
