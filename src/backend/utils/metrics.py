"""
Prometheus metrics configuration for JS Sandbox.

Defines custom metrics for sandbox lifecycle, executions and tool calls.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# Use standard Prometheus naming conventions: namespace_subsystem_name_unit
NAMESPACE = "jssandbox"


# ============================================================================
# Sandbox Lifecycle Metrics
# ============================================================================

sandboxes_active = Gauge(
    f"{NAMESPACE}_sandboxes_active",
    "Number of sandboxes currently in the registry",
)

sandboxes_created_total = Counter(
    f"{NAMESPACE}_sandboxes_created_total",
    "Total number of sandboxes created",
    ["kind"],  # "persistent" or "ephemeral"
)

sandbox_creation_failures_total = Counter(
    f"{NAMESPACE}_sandbox_creation_failures_total",
    "Total number of sandbox creations the engine rejected",
)

sandboxes_removed_total = Counter(
    f"{NAMESPACE}_sandboxes_removed_total",
    "Total number of sandboxes force-removed",
    ["reason", "status"],  # reason: "stop", "ephemeral", "scavenged", "shutdown"; status: "success", "error"
)


# ============================================================================
# Execution Metrics
# ============================================================================

executions_total = Counter(
    f"{NAMESPACE}_executions_total",
    "Total number of pipeline runs",
    ["mode", "outcome"],  # mode: "persistent", "ephemeral"; outcome: "success", "timeout", "error"
)

install_duration_seconds = Histogram(
    f"{NAMESPACE}_install_duration_seconds",
    "npm install duration in seconds",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

run_duration_seconds = Histogram(
    f"{NAMESPACE}_run_duration_seconds",
    "Entry script run duration in seconds",
    buckets=(0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


# ============================================================================
# Tool Metrics
# ============================================================================

tool_calls_total = Counter(
    f"{NAMESPACE}_tool_calls_total",
    "Total number of tool calls executed",
    ["tool_name", "status"],  # status: "success", "error"
)

tool_call_duration_seconds = Histogram(
    f"{NAMESPACE}_tool_call_duration_seconds",
    "Tool call execution duration in seconds",
    ["tool_name"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)
