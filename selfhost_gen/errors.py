"""Typed exceptions raised while validating or gating a deployment topology."""

from __future__ import annotations

from typing import List, Optional, Sequence


class ProvisioningError(Exception):
    """Base exception for topology configuration and startup failures."""


class ConfigurationError(ProvisioningError, ValueError):
    """Static configuration problem detected before any service starts."""

    def __init__(self, message: str, service: Optional[str] = None):
        super().__init__(message)
        self.service = service


class ConfigurationCycleError(ConfigurationError):
    """The depends_on edges among services do not form a DAG."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle: List[str] = list(cycle)
        path = " -> ".join(self.cycle)
        super().__init__(f"Dependency cycle detected: {path}", service=self.cycle[0] if self.cycle else None)


class MissingRequiredBuildSourceError(ConfigurationError):
    """A service declares neither a build context nor an image reference."""

    def __init__(self, service: str):
        super().__init__(f"Service '{service}' declares neither 'build' nor 'image'", service=service)


class UnknownServiceError(ConfigurationError):
    """A depends_on edge points at a service that is not declared."""

    def __init__(self, service: str, dependency: str):
        super().__init__(
            f"Service '{service}' depends on undefined service '{dependency}'",
            service=service,
        )
        self.dependency = dependency


class UndefinedVolumeError(ConfigurationError):
    """A service mounts a named volume missing from the top-level volumes."""

    def __init__(self, service: str, volume: str):
        super().__init__(f"Service '{service}' refers to undefined volume '{volume}'", service=service)
        self.volume = volume


class MissingHealthCheckError(ConfigurationError):
    """A service_healthy edge targets a service without a healthcheck."""

    def __init__(self, service: str, dependency: str):
        super().__init__(
            f"Service '{service}' waits for '{dependency}' to be healthy "
            f"but '{dependency}' has no healthcheck",
            service=service,
        )
        self.dependency = dependency


class HealthGateTimeout(ProvisioningError, TimeoutError):
    """A depended-on service failed to become ready; its dependents cannot start.

    Attributes:
        dependency: The service whose readiness gate failed.
        dependents: Services blocked behind it.
    """

    def __init__(self, dependency: str, dependents: Sequence[str], reason: str = ""):
        self.dependency = dependency
        self.dependents: List[str] = list(dependents)
        blocked = ", ".join(self.dependents) or "<none>"
        message = f"Service '{dependency}' did not become ready; blocked dependents: {blocked}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
