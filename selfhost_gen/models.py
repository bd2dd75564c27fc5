"""Pydantic data models shared across the self-hosted deployment generator."""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DependencyCondition(str, Enum):
    STARTED = "service_started"
    HEALTHY = "service_healthy"
    COMPLETED = "service_completed_successfully"


class BuildSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    context: str = "."
    dockerfile: Optional[str] = None


class PortBinding(BaseModel):
    """A container port, optionally published on a host port expression."""

    model_config = ConfigDict(frozen=True)

    container: int
    host: Optional[str] = None
    host_ip: Optional[str] = None
    protocol: str = "tcp"


class VolumeMount(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: Optional[str] = None
    target: str
    read_only: bool = False


class EnvBinding(BaseModel):
    """Environment variable name and the raw value expression it resolves from."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: str = ""


class HealthCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    test: str
    interval: float = 30.0
    start_period: float = 0.0
    timeout: float = 30.0
    retries: int = 3


class ServiceDependency(BaseModel):
    model_config = ConfigDict(frozen=True)

    service: str
    condition: DependencyCondition = DependencyCondition.STARTED


class ServiceSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    build: Optional[BuildSource] = None
    image: Optional[str] = None
    ports: List[PortBinding] = Field(default_factory=list)
    volumes: List[VolumeMount] = Field(default_factory=list)
    environment: List[EnvBinding] = Field(default_factory=list)
    healthcheck: Optional[HealthCheck] = None
    depends_on: List[ServiceDependency] = Field(default_factory=list)

    def has_build_source(self) -> bool:
        return self.build is not None or bool((self.image or "").strip())

    def dependency_names(self) -> List[str]:
        return [dep.service for dep in self.depends_on]


class VolumeSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    driver: Optional[str] = None


class Topology(BaseModel):
    model_config = ConfigDict(frozen=True)

    services: Dict[str, ServiceSpec] = Field(default_factory=dict)
    volumes: Dict[str, VolumeSpec] = Field(default_factory=dict)


class ResolvedPort(BaseModel):
    container: int
    host: str = ""
    host_ip: Optional[str] = None
    protocol: str = "tcp"


class ResolvedHealthCheck(BaseModel):
    test: str
    interval: float
    start_period: float
    timeout: float
    retries: int


class ResolvedService(BaseModel):
    name: str
    build: Optional[BuildSource] = None
    image: Optional[str] = None
    ports: List[ResolvedPort] = Field(default_factory=list)
    volumes: List[VolumeMount] = Field(default_factory=list)
    environment: Dict[str, str] = Field(default_factory=dict)
    healthcheck: Optional[ResolvedHealthCheck] = None
    depends_on: List[ServiceDependency] = Field(default_factory=list)


class ResolvedTopology(BaseModel):
    services: Dict[str, ResolvedService] = Field(default_factory=dict)
    volumes: Dict[str, VolumeSpec] = Field(default_factory=dict)
    startup_order: List[str] = Field(default_factory=list)

    def to_json(self) -> str:
        """Return an indented JSON representation for export."""
        return self.model_dump_json(indent=2)
