"""Parsing utilities to transform docker-compose files into a deployment Topology."""
from __future__ import annotations

import logging
import re
import shlex
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigurationError
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

logger = logging.getLogger(__name__)

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(us|ms|s|m|h)")
_DURATION_UNITS = {"us": 1e-6, "ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0}
_VOLUME_MODES = {"ro", "rw", "z", "cached", "delegated", "consistent", "nocopy"}


def load_compose_file(path: Path) -> Dict:
    """Load a docker-compose YAML file into a python dictionary."""
    if not path.exists():
        raise FileNotFoundError(f"Compose file not found: {path}")

    logger.info("Loading compose file: %s", path)
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError("Compose file did not produce a mapping")
    return data


def parse_compose_text(text: str) -> Dict:
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError("Compose content must be a YAML mapping.")
    return data


def parse_duration(value: Any) -> float:
    """Convert a compose duration (``5s``, ``1m30s``, ``250ms``) into seconds.

    Bare numbers are taken as seconds.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value or "").strip()
    if not text:
        raise ValueError("Duration must not be empty")
    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    position = 0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ValueError(f"Invalid duration: {text!r}")
    return total


def _split_port_mapping(value: str) -> List[str]:
    """Split on ':' while ignoring colons inside ${...} and [IPv6]."""
    parts: List[str] = []
    current: List[str] = []
    brace_depth = 0
    bracket_depth = 0
    index = 0
    while index < len(value):
        ch = value[index]
        if value.startswith("$$", index):
            current.append("$$")
            index += 2
            continue
        if ch == "$" and index + 1 < len(value) and value[index + 1] == "{":
            brace_depth += 1
            current.append("${")
            index += 2
            continue
        if ch == "}" and brace_depth:
            brace_depth -= 1
        elif ch == "[":
            bracket_depth += 1
        elif ch == "]" and bracket_depth:
            bracket_depth -= 1
        elif ch == ":" and brace_depth == 0 and bracket_depth == 0:
            parts.append("".join(current))
            current = []
            index += 1
            continue
        current.append(ch)
        index += 1
    parts.append("".join(current))
    return parts


def _split_protocol(value: str) -> Tuple[str, str]:
    # Only a trailing "/proto" outside ${...} counts.
    head, sep, tail = value.rpartition("/")
    if sep and tail.strip().lower() in {"tcp", "udp", "sctp"} and "}" not in tail:
        return head, tail.strip().lower()
    return value, "tcp"


def _as_container_port(value: Any, entry: Any) -> int:
    text = str(value).strip()
    if not text.isdigit():
        raise ConfigurationError(f"Unsupported container port in entry {entry!r}")
    port = int(text)
    if not 0 < port < 65536:
        raise ConfigurationError(f"Container port out of range in entry {entry!r}")
    return port


def parse_port_entry(entry: Any) -> PortBinding:
    """Parse short (``"host:container/proto"``) or long port syntax."""
    if isinstance(entry, bool):
        raise ConfigurationError(f"Unsupported port entry: {entry!r}")

    if isinstance(entry, int):
        return PortBinding(container=_as_container_port(entry, entry))

    if isinstance(entry, str):
        cleaned, protocol = _split_protocol(entry.strip())
        parts = _split_port_mapping(cleaned)
        if len(parts) == 1:
            return PortBinding(container=_as_container_port(parts[0], entry), protocol=protocol)
        host_ip: Optional[str] = None
        if len(parts) >= 3:
            host_ip = ":".join(parts[:-2]).strip() or None
        host = parts[-2].strip() or None
        return PortBinding(
            container=_as_container_port(parts[-1], entry),
            host=host,
            host_ip=host_ip,
            protocol=protocol,
        )

    if isinstance(entry, dict):
        target = entry.get("target")
        if target is None:
            raise ConfigurationError(f"Long-syntax port entry needs 'target': {entry!r}")
        published = entry.get("published")
        return PortBinding(
            container=_as_container_port(target, entry),
            host=str(published).strip() if published is not None and str(published).strip() else None,
            host_ip=str(entry["host_ip"]) if entry.get("host_ip") else None,
            protocol=str(entry.get("protocol") or "tcp").strip().lower(),
        )

    raise ConfigurationError(f"Unsupported port entry: {entry!r}")


def parse_volume_entry(entry: Any) -> VolumeMount:
    if isinstance(entry, str):
        cleaned = entry.strip()
        if not cleaned:
            raise ConfigurationError("Volume entry must not be empty")
        parts = cleaned.split(":")
        if len(parts) == 1:
            return VolumeMount(target=cleaned)
        mode = ""
        if len(parts) >= 3 and all(item.strip().lower() in _VOLUME_MODES for item in parts[-1].split(",")):
            mode = parts[-1]
            parts = parts[:-1]
        source = ":".join(parts[:-1])
        read_only = "ro" in [item.strip().lower() for item in mode.split(",")]
        return VolumeMount(source=source or None, target=parts[-1], read_only=read_only)

    if isinstance(entry, dict):
        target = entry.get("target")
        if not target or not str(target).strip():
            raise ConfigurationError(f"Long-syntax volume entry needs 'target': {entry!r}")
        source = entry.get("source")
        return VolumeMount(
            source=str(source).strip() if source else None,
            target=str(target).strip(),
            read_only=bool(entry.get("read_only")),
        )

    raise ConfigurationError(f"Unsupported volume entry: {entry!r}")


def is_named_volume(source: Optional[str]) -> bool:
    """Return True when a mount source names a volume rather than a host path."""
    text = (source or "").strip()
    if not text:
        return False
    if text.startswith((".", "/", "~", "$")):
        return False
    if "/" in text or "\\" in text:
        return False
    # Windows drive prefix (e.g. C:\)
    if len(text) >= 2 and text[1] == ":":
        return False
    return True


def extract_environment(service: Dict) -> List[EnvBinding]:
    env_data = service.get("environment", []) or []
    items: List[EnvBinding] = []
    if isinstance(env_data, dict):
        for key, value in env_data.items():
            key = str(key).strip()
            if not key:
                continue
            # A key without a value is passed through from the host environment.
            expression = f"${{{key}}}" if value is None else _scalar_text(value)
            items.append(EnvBinding(name=key, value=expression))
        return items

    for entry in env_data:
        if not isinstance(entry, str):
            raise ConfigurationError(f"Unsupported environment entry: {entry!r}")
        key, sep, value = entry.partition("=")
        key = key.strip()
        if not key:
            continue
        items.append(EnvBinding(name=key, value=value if sep else f"${{{key}}}"))
    return items


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def parse_healthcheck(block: Any) -> Optional[HealthCheck]:
    if not block:
        return None
    if not isinstance(block, dict):
        raise ConfigurationError(f"healthcheck must be a mapping: {block!r}")
    if block.get("disable"):
        return None

    test = block.get("test")
    if isinstance(test, list):
        items = [str(item) for item in test]
        if not items or items[0] == "NONE":
            return None
        if items[0] == "CMD-SHELL":
            command = " ".join(items[1:])
        elif items[0] == "CMD":
            command = shlex.join(items[1:])
        else:
            command = shlex.join(items)
    elif isinstance(test, str):
        command = test.strip()
    else:
        command = ""
    if not command:
        raise ConfigurationError("healthcheck requires a 'test' command")

    fields: Dict[str, Any] = {"test": command}
    for key in ("interval", "start_period", "timeout"):
        if block.get(key) is not None:
            try:
                fields[key] = parse_duration(block[key])
            except ValueError as exc:
                raise ConfigurationError(f"healthcheck.{key}: {exc}") from exc
    if block.get("retries") is not None:
        fields["retries"] = int(block["retries"])
    return HealthCheck(**fields)


def parse_depends_on(service_name: str, value: Any) -> List[ServiceDependency]:
    if not value:
        return []
    if isinstance(value, list):
        return [ServiceDependency(service=str(item)) for item in value]
    if isinstance(value, dict):
        deps: List[ServiceDependency] = []
        for name, options in value.items():
            condition = DependencyCondition.STARTED
            if isinstance(options, dict) and options.get("condition"):
                try:
                    condition = DependencyCondition(str(options["condition"]))
                except ValueError as exc:
                    raise ConfigurationError(
                        f"Service '{service_name}' uses unknown depends_on condition {options['condition']!r}",
                        service=service_name,
                    ) from exc
            deps.append(ServiceDependency(service=str(name), condition=condition))
        return deps
    raise ConfigurationError(f"Service '{service_name}' has malformed depends_on", service=service_name)


def parse_build(value: Any) -> Optional[BuildSource]:
    if value is None:
        return None
    if isinstance(value, str):
        return BuildSource(context=value)
    if isinstance(value, dict):
        return BuildSource(
            context=str(value.get("context") or "."),
            dockerfile=str(value["dockerfile"]) if value.get("dockerfile") else None,
        )
    raise ConfigurationError(f"Unsupported build entry: {value!r}")


def parse_service(name: str, service: Dict) -> ServiceSpec:
    if not isinstance(service, dict):
        raise ConfigurationError(f"Service '{name}' must be a mapping", service=name)
    image = service.get("image")
    return ServiceSpec(
        name=name,
        build=parse_build(service.get("build")),
        image=str(image) if image else None,
        ports=[parse_port_entry(entry) for entry in service.get("ports", []) or []],
        volumes=[parse_volume_entry(entry) for entry in service.get("volumes", []) or []],
        environment=extract_environment(service),
        healthcheck=parse_healthcheck(service.get("healthcheck")),
        depends_on=parse_depends_on(name, service.get("depends_on")),
    )


def build_topology(compose_data: Dict) -> Topology:
    services = compose_data.get("services") or {}
    if not services or not isinstance(services, dict):
        raise ValueError("Compose file must include services")

    parsed = {str(name): parse_service(str(name), svc) for name, svc in services.items()}

    volumes: Dict[str, VolumeSpec] = {}
    for name, options in (compose_data.get("volumes") or {}).items():
        driver = options.get("driver") if isinstance(options, dict) else None
        volumes[str(name)] = VolumeSpec(name=str(name), driver=driver)

    logger.debug("Parsed %d services and %d volumes", len(parsed), len(volumes))
    return Topology(services=parsed, volumes=volumes)
