"""
JS Sandbox MCP - Run JavaScript inside disposable Docker containers
===================================================================

MCP server that provisions short-lived Docker sandboxes for untrusted
JavaScript (Node.js, ES modules), installs npm dependencies on the fly and
reports exactly which files a run created, updated or deleted.

Key Features:
    - **Sandbox Lifecycle**: Persistent and ephemeral sandboxes with a registry and
      a background scavenger reclaiming timed-out containers
    - **Execution Pipeline**: stage, copy, install, run and diff with per-run telemetry
    - **Resource Profiles**: Memory/CPU ceilings per image, overridable from the environment
    - **Enterprise Logging**: Structured JSON logs with rotation, console on stderr
    - **Metrics**: Prometheus counters and histograms for sandboxes, runs and tool calls

Modules:
    core: Configuration, registry, scavenger, lifecycle manager, execution pipeline
    integrations: docker CLI adapter
    models: Sandbox data models and error types
    tools: MCP tool handlers and manager-bound wrappers
    utils: Logging, metrics, snapshots, workspace staging, response content
"""
