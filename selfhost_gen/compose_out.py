"""Helpers for producing docker-compose documents from a Topology."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from yaml.representer import SafeRepresenter

from .models import (
    HealthCheck,
    PortBinding,
    ResolvedHealthCheck,
    ResolvedPort,
    ResolvedService,
    ResolvedTopology,
    ServiceDependency,
    ServiceSpec,
    Topology,
    VolumeMount,
    VolumeSpec,
)

logger = logging.getLogger(__name__)

COMPOSE_FILE_VERSION = "3.8"
_DEFAULT_HEALTHCHECK = HealthCheck(test="true")


class QuotedStr(str):
    """A string that must be rendered with double quotes in YAML."""


class _ComposeYamlDumper(yaml.SafeDumper):
    def increase_indent(self, flow: bool = False, indentless: bool = False) -> None:  # type: ignore[override]
        # Indent sequences under their mapping key, as compose files are usually written.
        return super().increase_indent(flow, False)


def _represent_quoted_str(dumper: yaml.SafeDumper, data: QuotedStr) -> yaml.ScalarNode:
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(data), style='"')


def _represent_none(dumper: yaml.SafeDumper, data: None) -> yaml.ScalarNode:
    # Top-level named volumes without options render as a bare key ("data:").
    return dumper.represent_scalar("tag:yaml.org,2002:null", "")


def _represent_multiline_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return SafeRepresenter.represent_str(dumper, data)


_ComposeYamlDumper.add_representer(QuotedStr, _represent_quoted_str)
_ComposeYamlDumper.add_representer(type(None), _represent_none)
_ComposeYamlDumper.add_representer(str, _represent_multiline_str)


def format_duration(seconds: float) -> str:
    """Render seconds as a compose duration (``5s``, ``1m30s``, ``250ms``)."""
    if seconds <= 0:
        return "0s"
    millis = int(round(seconds * 1000))
    hours, millis = divmod(millis, 3_600_000)
    minutes, millis = divmod(millis, 60_000)
    secs, millis = divmod(millis, 1000)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs:
        parts.append(f"{secs}s")
    if millis:
        parts.append(f"{millis}ms")
    return "".join(parts)


def format_port(port: PortBinding | ResolvedPort) -> QuotedStr:
    text = str(port.container)
    if port.host:
        text = f"{port.host}:{text}"
        if port.host_ip:
            text = f"{port.host_ip}:{text}"
    if port.protocol and port.protocol != "tcp":
        text = f"{text}/{port.protocol}"
    return QuotedStr(text)


def format_volume(mount: VolumeMount) -> str:
    text = f"{mount.source}:{mount.target}" if mount.source else mount.target
    if mount.read_only:
        text = f"{text}:ro"
    return text


def _healthcheck_block(check: HealthCheck | ResolvedHealthCheck) -> Dict[str, Any]:
    block: Dict[str, Any] = {
        "test": check.test,
        "interval": format_duration(check.interval),
        "start_period": format_duration(check.start_period),
    }
    if check.timeout != _DEFAULT_HEALTHCHECK.timeout:
        block["timeout"] = format_duration(check.timeout)
    if check.retries != _DEFAULT_HEALTHCHECK.retries:
        block["retries"] = check.retries
    return block


def _depends_on_block(depends_on: List[ServiceDependency]) -> Dict[str, Any]:
    return {dep.service: {"condition": dep.condition.value} for dep in depends_on}


def _service_block(spec: ServiceSpec | ResolvedService, environment: List[str]) -> Dict[str, Any]:
    block: Dict[str, Any] = {}
    if spec.build is not None:
        build: Dict[str, Any] = {"context": spec.build.context}
        if spec.build.dockerfile:
            build["dockerfile"] = spec.build.dockerfile
        block["build"] = build
    if spec.image:
        block["image"] = spec.image
    if spec.ports:
        block["ports"] = [format_port(port) for port in spec.ports]
    if spec.volumes:
        block["volumes"] = [format_volume(mount) for mount in spec.volumes]
    if environment:
        block["environment"] = environment
    if spec.healthcheck is not None:
        block["healthcheck"] = _healthcheck_block(spec.healthcheck)
    if spec.depends_on:
        block["depends_on"] = _depends_on_block(spec.depends_on)
    return block


def _volumes_block(volumes: Dict[str, VolumeSpec]) -> Dict[str, Optional[Dict[str, str]]]:
    return {name: ({"driver": volume.driver} if volume.driver else None) for name, volume in volumes.items()}


def build_compose_document(topology: Topology) -> Dict[str, Any]:
    """Declarative compose document with value expressions left in place."""
    document: Dict[str, Any] = {
        "version": QuotedStr(COMPOSE_FILE_VERSION),
        "services": {
            name: _service_block(spec, [f"{env.name}={env.value}" for env in spec.environment])
            for name, spec in topology.services.items()
        },
    }
    if topology.volumes:
        document["volumes"] = _volumes_block(topology.volumes)
    return document


def escape_interpolation(text: Optional[str]) -> Optional[str]:
    """Double every ``$`` so compose reads the text literally."""
    if not text:
        return text
    return text.replace("$", "$$")


def _escaped_service(svc: ResolvedService) -> ResolvedService:
    # Resolved values are final; compose must not interpolate them again.
    update: Dict[str, Any] = {
        "image": escape_interpolation(svc.image),
        "ports": [
            port.model_copy(update={"host": escape_interpolation(port.host), "host_ip": escape_interpolation(port.host_ip)})
            for port in svc.ports
        ],
        "volumes": [
            mount.model_copy(
                update={"source": escape_interpolation(mount.source), "target": escape_interpolation(mount.target)}
            )
            for mount in svc.volumes
        ],
        "environment": {key: escape_interpolation(value) for key, value in svc.environment.items()},
    }
    if svc.healthcheck is not None:
        update["healthcheck"] = svc.healthcheck.model_copy(update={"test": escape_interpolation(svc.healthcheck.test)})
    return svc.model_copy(update=update)


def build_resolved_document(resolved: ResolvedTopology) -> Dict[str, Any]:
    """Compose document with every expression already substituted and ``$`` escaped."""
    services: Dict[str, Any] = {}
    for name, svc in resolved.services.items():
        escaped = _escaped_service(svc)
        services[name] = _service_block(escaped, [f"{key}={value}" for key, value in escaped.environment.items()])
    document: Dict[str, Any] = {
        "version": QuotedStr(COMPOSE_FILE_VERSION),
        "services": services,
    }
    if resolved.volumes:
        document["volumes"] = _volumes_block(resolved.volumes)
    return document


def dump_yaml(data: Any) -> str:
    """Serialize data into YAML with compose-friendly indentation."""
    return yaml.dump(
        data,
        Dumper=_ComposeYamlDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=4096,
    )


def write_compose_file(data: Dict, path: Path) -> None:
    yaml_text = dump_yaml(data)
    with path.open("w", encoding="utf-8") as handle:
        handle.write(yaml_text)
    logger.info("Compose file written to %s", path)
