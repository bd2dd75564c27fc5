"""Self-hosted Convex deployment generator package."""

from .codegen import generate_environment_descriptor, regenerate_environment_descriptor
from .errors import (
    ConfigurationCycleError,
    HealthGateTimeout,
    MissingRequiredBuildSourceError,
    ProvisioningError,
)
from .models import ResolvedService, ResolvedTopology, ServiceSpec, Topology, VolumeSpec
from .readiness import HealthState, HealthTracker, ProbeResult, ReadinessGate, is_ready, simulate_startup
from .topology import resolve_service, resolve_topology, validate_dependency_graph

__all__ = [
    "ConfigurationCycleError",
    "HealthGateTimeout",
    "HealthState",
    "HealthTracker",
    "MissingRequiredBuildSourceError",
    "ProbeResult",
    "ProvisioningError",
    "ReadinessGate",
    "ResolvedService",
    "ResolvedTopology",
    "ServiceSpec",
    "Topology",
    "VolumeSpec",
    "generate_environment_descriptor",
    "is_ready",
    "regenerate_environment_descriptor",
    "resolve_service",
    "resolve_topology",
    "simulate_startup",
    "validate_dependency_graph",
]
