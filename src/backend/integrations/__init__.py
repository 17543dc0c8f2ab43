"""
Integrations Module - External System Integrations
===================================================

Provides the async adapter over the docker CLI used to create, exec into,
copy into and force-remove sandbox containers.
"""

from integrations.container_runtime import CleanupResult, DockerRuntime

__all__ = ["CleanupResult", "DockerRuntime"]
