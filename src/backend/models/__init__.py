"""Sandbox data models and error types."""
