"""Health tracking and readiness gating between dependent services.

The orchestrator owns the real probe loop; this module captures the contract
it must honour so that the gating can be exercised without containers:

- a service is ready the first time its health probe succeeds;
- failures inside ``start_period`` are not counted;
- after the start period, ``retries`` consecutive failures mark the service
  unhealthy, which is surfaced to its dependents as ``HealthGateTimeout``;
- a dependent leaves ``pending`` only once every dependency satisfies the
  condition declared on its edge.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Union

from .errors import HealthGateTimeout
from .models import DependencyCondition, HealthCheck, ResolvedHealthCheck, ServiceDependency, Topology
from .topology import validate_topology

logger = logging.getLogger(__name__)

AnyHealthCheck = Union[HealthCheck, ResolvedHealthCheck]


class HealthState(str, Enum):
    PENDING = "pending"
    STARTING = "starting"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    EXITED = "exited"


@dataclass(frozen=True)
class ProbeResult:
    """One health probe outcome; ``at`` is seconds since the service started."""

    ok: bool
    at: float
    output: str = ""
    duration: float = 0.0


class HealthTracker:
    """Per-service health state as observed by its dependents."""

    def __init__(self, service: str, healthcheck: Optional[AnyHealthCheck] = None):
        self.service = service
        self.healthcheck = healthcheck
        self.state = HealthState.PENDING
        self.ever_healthy = False
        self.failing_streak = 0
        self.exit_code: Optional[int] = None

    @property
    def ready(self) -> bool:
        return self.ever_healthy

    @property
    def started(self) -> bool:
        return self.state is not HealthState.PENDING

    def start(self) -> None:
        if self.state is HealthState.PENDING:
            self.state = HealthState.STARTING
            logger.debug("%s: pending -> starting", self.service)

    def record(self, result: ProbeResult) -> HealthState:
        if self.state is HealthState.PENDING:
            self.start()
        if self.healthcheck is None or self.state is HealthState.EXITED:
            return self.state

        ok = result.ok and result.duration <= self.healthcheck.timeout
        previous = self.state
        if ok:
            self.failing_streak = 0
            self.ever_healthy = True
            self.state = HealthState.HEALTHY
        elif result.at <= self.healthcheck.start_period and not self.ever_healthy:
            logger.debug("%s: probe failed at %.1fs inside start period", self.service, result.at)
        else:
            self.failing_streak += 1
            if self.failing_streak >= self.healthcheck.retries:
                self.state = HealthState.UNHEALTHY

        if self.state is not previous:
            if self.state is HealthState.UNHEALTHY:
                logger.warning(
                    "%s: unhealthy after %d consecutive failed probes", self.service, self.failing_streak
                )
            else:
                logger.info("%s: %s -> %s", self.service, previous.value, self.state.value)
        return self.state

    def mark_exited(self, exit_code: int) -> None:
        self.start()
        self.exit_code = exit_code
        self.state = HealthState.EXITED
        logger.info("%s: exited with code %d", self.service, exit_code)


def is_ready(tracker: HealthTracker, probe_result: ProbeResult) -> bool:
    """Record a probe outcome and report whether the service has been healthy yet."""
    tracker.record(probe_result)
    return tracker.ready


class ReadinessGate:
    """Decides when each service of a topology may leave ``pending``."""

    def __init__(self, topology: Topology):
        self.topology = topology
        self.trackers: Dict[str, HealthTracker] = {
            name: HealthTracker(name, spec.healthcheck) for name, spec in topology.services.items()
        }

    def tracker(self, service: str) -> HealthTracker:
        return self.trackers[service]

    def condition_met(self, dependency: ServiceDependency) -> bool:
        tracker = self.trackers[dependency.service]
        if dependency.condition is DependencyCondition.HEALTHY:
            return tracker.ever_healthy
        if dependency.condition is DependencyCondition.COMPLETED:
            return tracker.state is HealthState.EXITED and tracker.exit_code == 0
        return tracker.started

    def can_start(self, service: str) -> bool:
        return all(self.condition_met(dep) for dep in self.topology.services[service].depends_on)

    def dependents_of(self, service: str) -> List[str]:
        """Services that directly or transitively wait on ``service``."""
        blocked: List[str] = []
        frontier = [service]
        while frontier:
            current = frontier.pop(0)
            for name, spec in self.topology.services.items():
                if current in spec.dependency_names() and name not in blocked:
                    blocked.append(name)
                    frontier.append(name)
        return blocked

    def check(self, service: str) -> None:
        """Raise ``HealthGateTimeout`` when a dependency of ``service`` can no longer be satisfied."""
        for dependency in self.topology.services[service].depends_on:
            tracker = self.trackers[dependency.service]
            if dependency.condition is DependencyCondition.HEALTHY and not tracker.ever_healthy:
                if tracker.state is HealthState.UNHEALTHY:
                    raise HealthGateTimeout(
                        dependency.service,
                        self.dependents_of(dependency.service),
                        reason="unhealthy after start period",
                    )
                if tracker.state is HealthState.EXITED:
                    raise HealthGateTimeout(
                        dependency.service,
                        self.dependents_of(dependency.service),
                        reason="exited before becoming healthy",
                    )
            if dependency.condition is DependencyCondition.COMPLETED:
                if tracker.state is HealthState.EXITED and tracker.exit_code != 0:
                    raise HealthGateTimeout(
                        dependency.service,
                        self.dependents_of(dependency.service),
                        reason=f"exited with code {tracker.exit_code}",
                    )


@dataclass(frozen=True)
class TimelineEvent:
    time: float
    service: str
    state: HealthState


@dataclass
class StartupTimeline:
    events: List[TimelineEvent] = field(default_factory=list)

    def record(self, time: float, service: str, state: HealthState) -> None:
        self.events.append(TimelineEvent(time=time, service=service, state=state))

    def states_of(self, service: str) -> List[HealthState]:
        return [event.state for event in self.events if event.service == service]

    def first_time(self, service: str, state: HealthState) -> Optional[float]:
        for event in self.events:
            if event.service == service and event.state is state:
                return event.time
        return None

    def final_states(self) -> Dict[str, HealthState]:
        finals: Dict[str, HealthState] = {}
        for event in self.events:
            finals[event.service] = event.state
        return finals


def simulate_startup(
    topology: Topology,
    probe_results: Mapping[str, Sequence[bool]],
    exit_codes: Optional[Mapping[str, int]] = None,
    max_time: float = 3600.0,
) -> StartupTimeline:
    """Replay scripted probe outcomes on a virtual clock and gate startup.

    Each started service with a healthcheck consumes one outcome from
    ``probe_results`` every ``interval`` seconds. Services listed in
    ``exit_codes`` exit with that code as soon as they start. Returns once no
    service is pending; raises ``HealthGateTimeout`` when a dependency turns
    unhealthy, exits, or runs out of scripted outcomes while others still wait
    on it.
    """
    order = validate_topology(topology)
    gate = ReadinessGate(topology)
    exit_codes = exit_codes or {}
    scripts: Dict[str, List[bool]] = {name: list(results) for name, results in probe_results.items()}
    timeline = StartupTimeline()
    started_at: Dict[str, float] = {}
    next_probe: Dict[str, float] = {}
    now = 0.0

    for name in order:
        timeline.record(now, name, HealthState.PENDING)

    while True:
        progressed = True
        while progressed:
            progressed = False
            for name in order:
                tracker = gate.tracker(name)
                if tracker.started:
                    continue
                gate.check(name)
                if not gate.can_start(name):
                    continue
                tracker.start()
                started_at[name] = now
                timeline.record(now, name, HealthState.STARTING)
                if name in exit_codes:
                    tracker.mark_exited(exit_codes[name])
                    timeline.record(now, name, HealthState.EXITED)
                elif tracker.healthcheck is not None:
                    next_probe[name] = now + tracker.healthcheck.interval
                progressed = True

        pending = [name for name in order if not gate.tracker(name).started]
        if not pending:
            logger.info("All services started by t=%.1fs", now)
            return timeline

        due = [name for name in next_probe if scripts.get(name)]
        if not due:
            blocker = _first_unmet_dependency(gate, pending)
            raise HealthGateTimeout(
                blocker,
                gate.dependents_of(blocker),
                reason="no further probe results before becoming ready",
            )

        now = min(next_probe[name] for name in due)
        if now > max_time:
            blocker = _first_unmet_dependency(gate, pending)
            raise HealthGateTimeout(blocker, gate.dependents_of(blocker), reason=f"exceeded {max_time:.0f}s")

        for name in order:
            if name not in due or next_probe[name] != now:
                continue
            tracker = gate.tracker(name)
            previous = tracker.state
            result = ProbeResult(ok=scripts[name].pop(0), at=now - started_at[name])
            state = tracker.record(result)
            if state is not previous:
                timeline.record(now, name, state)
            next_probe[name] = now + tracker.healthcheck.interval


def _first_unmet_dependency(gate: ReadinessGate, pending: Sequence[str]) -> str:
    for name in pending:
        for dependency in gate.topology.services[name].depends_on:
            if not gate.condition_met(dependency):
                return dependency.service
    return pending[0]
