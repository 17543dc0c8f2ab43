"""Core sandbox engine: configuration, registry, scavenger, lifecycle and execution pipeline."""
