"""Logging, metrics, snapshots, workspace staging and response content helpers."""
