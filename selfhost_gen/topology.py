"""Deployment topology validation and resolution.

A Topology is a static, declarative plan. Nothing here starts containers or
mounts volumes; it only checks that an orchestrator could schedule the plan
and substitutes environment expressions into concrete values.
"""

from __future__ import annotations

import logging
from collections import abc
from typing import Dict, Iterable, List, Mapping

from .errors import (
    ConfigurationCycleError,
    MissingHealthCheckError,
    MissingRequiredBuildSourceError,
    UndefinedVolumeError,
    UnknownServiceError,
)
from .interpolation import interpolate
from .models import (
    DependencyCondition,
    ResolvedHealthCheck,
    ResolvedPort,
    ResolvedService,
    ResolvedTopology,
    ServiceSpec,
    Topology,
    VolumeMount,
)
from .parser import is_named_volume

logger = logging.getLogger(__name__)

_WHITE, _GREY, _BLACK = 0, 1, 2


def _as_mapping(services: Iterable[ServiceSpec] | Mapping[str, ServiceSpec]) -> Dict[str, ServiceSpec]:
    if isinstance(services, abc.Mapping):
        return dict(services)
    return {svc.name: svc for svc in services}


def resolve_service(spec: ServiceSpec, env: Mapping[str, str]) -> ResolvedService:
    """Substitute every expression of ``spec`` against ``env``.

    Unset variables resolve to their literal default or the empty string, so
    this never raises for missing configuration.
    """
    environment = {binding.name: interpolate(binding.value, env) for binding in spec.environment}
    ports = [
        ResolvedPort(
            container=port.container,
            host=interpolate(port.host, env),
            host_ip=interpolate(port.host_ip, env) or None,
            protocol=port.protocol,
        )
        for port in spec.ports
    ]
    volumes = [
        VolumeMount(
            source=interpolate(mount.source, env) or None,
            target=interpolate(mount.target, env),
            read_only=mount.read_only,
        )
        for mount in spec.volumes
    ]
    healthcheck = None
    if spec.healthcheck is not None:
        healthcheck = ResolvedHealthCheck(
            test=interpolate(spec.healthcheck.test, env),
            interval=spec.healthcheck.interval,
            start_period=spec.healthcheck.start_period,
            timeout=spec.healthcheck.timeout,
            retries=spec.healthcheck.retries,
        )

    return ResolvedService(
        name=spec.name,
        build=spec.build,
        image=interpolate(spec.image, env) or None,
        ports=ports,
        volumes=volumes,
        environment=environment,
        healthcheck=healthcheck,
        depends_on=list(spec.depends_on),
    )


def validate_build_sources(services: Iterable[ServiceSpec] | Mapping[str, ServiceSpec]) -> None:
    for name, spec in _as_mapping(services).items():
        if not spec.has_build_source():
            raise MissingRequiredBuildSourceError(name)


def validate_dependency_graph(services: Iterable[ServiceSpec] | Mapping[str, ServiceSpec]) -> None:
    """Raise unless the depends_on edges form a DAG over declared services."""
    graph = _as_mapping(services)
    for name, spec in graph.items():
        for dependency in spec.dependency_names():
            if dependency not in graph:
                raise UnknownServiceError(name, dependency)

    color = {name: _WHITE for name in graph}
    for root in graph:
        if color[root] != _WHITE:
            continue
        color[root] = _GREY
        path: List[str] = [root]
        pending = [iter(graph[root].dependency_names())]
        while pending:
            dependency = next(pending[-1], None)
            if dependency is None:
                pending.pop()
                color[path.pop()] = _BLACK
            elif color[dependency] == _GREY:
                start = path.index(dependency)
                raise ConfigurationCycleError(path[start:] + [dependency])
            elif color[dependency] == _WHITE:
                color[dependency] = _GREY
                path.append(dependency)
                pending.append(iter(graph[dependency].dependency_names()))


def startup_order(services: Iterable[ServiceSpec] | Mapping[str, ServiceSpec]) -> List[str]:
    """Return service names with dependencies first, ties in declaration order."""
    graph = _as_mapping(services)
    validate_dependency_graph(graph)

    remaining = {name: set(spec.dependency_names()) for name, spec in graph.items()}
    order: List[str] = []
    while remaining:
        ready = next(name for name in graph if name in remaining and not remaining[name])
        order.append(ready)
        del remaining[ready]
        for deps in remaining.values():
            deps.discard(ready)
    return order


def validate_topology(topology: Topology) -> List[str]:
    """Run every static check and return the startup order."""
    services = topology.services
    validate_build_sources(services)
    order = startup_order(services)

    for name, spec in services.items():
        for mount in spec.volumes:
            if is_named_volume(mount.source) and mount.source not in topology.volumes:
                raise UndefinedVolumeError(name, str(mount.source))
        for dependency in spec.depends_on:
            if dependency.condition is DependencyCondition.HEALTHY and services[dependency.service].healthcheck is None:
                raise MissingHealthCheckError(name, dependency.service)

    logger.debug("Topology valid; startup order: %s", order)
    return order


def resolve_topology(topology: Topology, env: Mapping[str, str]) -> ResolvedTopology:
    order = validate_topology(topology)
    resolved = {name: resolve_service(spec, env) for name, spec in topology.services.items()}
    logger.info("Resolved %d services", len(resolved))
    return ResolvedTopology(
        services=resolved,
        volumes=dict(topology.volumes),
        startup_order=order,
    )
