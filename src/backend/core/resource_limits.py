"""
Resource ceilings per execution profile.

Profiles are matched by substring against the image name. IMAGE_PROFILES is an
ordered tuple and the first match wins, so an image that contains more than one
profile key always resolves the same way.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ResourceLimits:
    """Memory and CPU ceilings for one sandbox. None means no flag is passed."""

    memory: str | None = None
    cpus: str | None = None

    def to_docker_args(self) -> list[str]:
        """Render as `docker run` flags, omitting unset limits."""
        args: list[str] = []
        if self.memory:
            args.extend(["--memory", self.memory])
        if self.cpus:
            args.extend(["--cpus", self.cpus])
        return args


IMAGE_PROFILES: tuple[tuple[str, ResourceLimits], ...] = (
    ("node:lts-slim", ResourceLimits(memory="512m", cpus="1")),
    ("alfonsograziano/node-chartjs", ResourceLimits(memory="2g", cpus="2")),
    ("mcr.microsoft.com/playwright", ResourceLimits(memory="2g", cpus="2")),
)


def resolve_resource_limits(
    image: str,
    memory_override: str | None = None,
    cpu_override: str | None = None,
) -> ResourceLimits:
    """Resolve memory/CPU ceilings for an image.

    Overrides win per field, even when the image is empty. Fields without an
    override come from the first profile whose key occurs in the image name,
    or stay unset when no profile matches.

    Args:
        image: Container image reference
        memory_override: Operator memory limit (e.g. "1g")
        cpu_override: Operator CPU limit (e.g. "0.5")

    Returns:
        ResourceLimits for the sandbox
    """
    profile = ResourceLimits()
    if image:
        for key, limits in IMAGE_PROFILES:
            if key in image:
                profile = limits
                break

    return ResourceLimits(
        memory=memory_override or profile.memory,
        cpus=cpu_override or profile.cpus,
    )
