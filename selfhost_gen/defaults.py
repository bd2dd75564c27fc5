"""The shipped self-hosted Convex topology: a backend and its dashboard."""

from __future__ import annotations

from typing import List

from .models import (
    BuildSource,
    DependencyCondition,
    EnvBinding,
    HealthCheck,
    PortBinding,
    ServiceDependency,
    ServiceSpec,
    Topology,
    VolumeMount,
    VolumeSpec,
)

BACKEND_SERVICE = "backend"
DASHBOARD_SERVICE = "dashboard"
DATA_VOLUME = "data"

BACKEND_IMAGE = "convex-backend"
BACKEND_DOCKERFILE = "self-hosted/docker-build/Dockerfile.backend"
BACKEND_DATA_DIR = "/convex/data"
BACKEND_PORTS = (3210, 3211)
DASHBOARD_IMAGE = "ghcr.io/get-convex/convex-dashboard:4499dd4fd7f2148687a7774599c613d052950f46"
DASHBOARD_PORT = 6791

HEALTH_PATH = "/version"
HEALTH_INTERVAL_SECONDS = 5.0
HEALTH_START_PERIOD_SECONDS = 5.0


def build_health_command(origin_expression: str = "${URL_BASE:-}") -> str:
    return f"curl -f http://{origin_expression}{HEALTH_PATH}"


def _backend_environment() -> List[EnvBinding]:
    bindings = [
        ("INSTANCE_NAME", "${INSTANCE_NAME:-}"),
        ("INSTANCE_SECRET", "${INSTANCE_SECRET:-}"),
        ("CONVEX_RELEASE_VERSION_DEV", "${CONVEX_RELEASE_VERSION_DEV:-}"),
        ("ACTIONS_USER_TIMEOUT_SECS", "${ACTIONS_USER_TIMEOUT_SECS:-}"),
        ("CONVEX_CLOUD_ORIGIN", "${URL_BASE:-}"),
        ("CONVEX_SITE_ORIGIN", "${SITE_URL_BASE:-}"),
        ("DATABASE_URL", "${DATABASE_URL:-}"),
        ("DISABLE_BEACON", "${DISABLE_BEACON:-}"),
        ("REDACT_LOGS_TO_CLIENT", "${REDACT_LOGS_TO_CLIENT:-}"),
        ("RUST_LOG", "${RUST_LOG:-info}"),
        ("RUST_BACKTRACE", "${RUST_BACKTRACE:-}"),
    ]
    return [EnvBinding(name=name, value=value) for name, value in bindings]


def build_backend_service() -> ServiceSpec:
    return ServiceSpec(
        name=BACKEND_SERVICE,
        build=BuildSource(context=".", dockerfile=BACKEND_DOCKERFILE),
        image=BACKEND_IMAGE,
        ports=[PortBinding(container=port) for port in BACKEND_PORTS],
        volumes=[VolumeMount(source=DATA_VOLUME, target=BACKEND_DATA_DIR)],
        environment=_backend_environment(),
        healthcheck=HealthCheck(
            test=build_health_command(),
            interval=HEALTH_INTERVAL_SECONDS,
            start_period=HEALTH_START_PERIOD_SECONDS,
        ),
    )


def build_dashboard_service() -> ServiceSpec:
    return ServiceSpec(
        name=DASHBOARD_SERVICE,
        image=DASHBOARD_IMAGE,
        ports=[PortBinding(container=DASHBOARD_PORT, host=f"${{DASHBOARD_PORT:-{DASHBOARD_PORT}}}")],
        environment=[EnvBinding(name="NEXT_PUBLIC_DEPLOYMENT_URL", value="${URL_BASE:-}")],
        depends_on=[ServiceDependency(service=BACKEND_SERVICE, condition=DependencyCondition.HEALTHY)],
    )


def build_default_topology() -> Topology:
    backend = build_backend_service()
    dashboard = build_dashboard_service()
    return Topology(
        services={backend.name: backend, dashboard.name: dashboard},
        volumes={DATA_VOLUME: VolumeSpec(name=DATA_VOLUME)},
    )
