"""High level orchestration helpers consumed by the CLI."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .codegen import (
    generate_environment_descriptor,
    regenerate_environment_descriptor,
    write_environment_descriptor,
)
from .compose_out import build_compose_document, dump_yaml, write_compose_file
from .defaults import build_default_topology
from .environment import RECOGNIZED_VARIABLES, load_environment
from .interpolation import referenced_names
from .models import ResolvedTopology, Topology
from .parser import build_topology, load_compose_file
from .topology import resolve_topology, validate_topology

logger = logging.getLogger(__name__)


def load_topology(compose_path: Optional[Path] = None) -> Topology:
    if compose_path is None:
        logger.debug("Using built-in self-hosted topology")
        return build_default_topology()
    return build_topology(load_compose_file(compose_path))


def compose_document(topology: Topology) -> Dict[str, Any]:
    validate_topology(topology)
    return build_compose_document(topology)


def resolve(
    topology: Topology,
    env_file: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ResolvedTopology:
    snapshot = env if env is not None else load_environment(env_file)
    return resolve_topology(topology, snapshot)


def topology_variables(topology: Topology) -> List[str]:
    """Names of every variable the topology's value expressions read, in first-use order."""
    names: Dict[str, None] = {}
    for spec in topology.services.values():
        expressions: List[Optional[str]] = [spec.image]
        expressions.extend(binding.value for binding in spec.environment)
        for port in spec.ports:
            expressions.extend((port.host, port.host_ip))
        for mount in spec.volumes:
            expressions.extend((mount.source, mount.target))
        if spec.healthcheck is not None:
            expressions.append(spec.healthcheck.test)
        for text in expressions:
            names.update(dict.fromkeys(referenced_names(text)))
    return list(names)


def describe_environment(env: Mapping[str, str], referenced: Iterable[str] = ()) -> Dict[str, str]:
    """Report, without values, how each recognised or referenced variable will resolve."""
    status: Dict[str, str] = {}
    for name, default in RECOGNIZED_VARIABLES.items():
        if env.get(name):
            status[name] = "set"
        elif default:
            status[name] = f"default ({default})"
        else:
            status[name] = "empty"
    for name in referenced:
        if name not in status:
            status[name] = f"{'set' if env.get(name) else 'empty'} (unrecognized)"
    return status


def check_report(topology: Topology, env: Mapping[str, str]) -> List[str]:
    order = validate_topology(topology)
    referenced = topology_variables(topology)
    unrecognized = [name for name in referenced if name not in RECOGNIZED_VARIABLES]
    if unrecognized:
        logger.warning("Topology reads unrecognized variables: %s", ", ".join(unrecognized))
    lines = [f"startup order: {' -> '.join(order)}"]
    for name, state in describe_environment(env, referenced).items():
        lines.append(f"  {name}: {state}")
    return lines


def emit_environment_descriptor(output_path: Optional[Path], preserve_edits: bool, dry_run: bool) -> str:
    if output_path is None or dry_run:
        if output_path is not None and preserve_edits and output_path.exists():
            text = regenerate_environment_descriptor(output_path.read_text(encoding="utf-8"))
        else:
            text = generate_environment_descriptor()
        if dry_run:
            logger.info("Dry run enabled; tsconfig not written to disk.")
        print(text)
        return text
    return write_environment_descriptor(output_path, preserve_edits=preserve_edits)


def write_compose_output(document: Dict[str, Any], output_path: Optional[Path], dry_run: bool) -> None:
    if output_path is None or dry_run:
        write_text_output(dump_yaml(document), None, dry_run)
        return
    write_compose_file(document, output_path)


def write_text_output(text: str, output_path: Optional[Path], dry_run: bool) -> None:
    if output_path is None or dry_run:
        if dry_run:
            logger.info("Dry run enabled; output not written to disk.")
        print(text, end="" if text.endswith("\n") else "\n")
        return
    output_path.write_text(text, encoding="utf-8")
    logger.info("Output written to %s", output_path)
