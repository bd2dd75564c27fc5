import unittest

from selfhost_gen.defaults import build_default_topology
from selfhost_gen.errors import HealthGateTimeout
from selfhost_gen.models import DependencyCondition, HealthCheck, ServiceDependency, ServiceSpec, Topology
from selfhost_gen.readiness import (
    HealthState,
    HealthTracker,
    ProbeResult,
    ReadinessGate,
    is_ready,
    simulate_startup,
)


def _two_service_topology(interval=5.0, start_period=5.0, retries=3):
    return Topology(
        services={
            "backend": ServiceSpec(
                name="backend",
                image="convex-backend",
                healthcheck=HealthCheck(
                    test="curl -f http://${URL_BASE:-}/version",
                    interval=interval,
                    start_period=start_period,
                    retries=retries,
                ),
            ),
            "dashboard": ServiceSpec(
                name="dashboard",
                image="dashboard",
                depends_on=[ServiceDependency(service="backend", condition=DependencyCondition.HEALTHY)],
            ),
        }
    )


class HealthTrackerTests(unittest.TestCase):
    def test_failures_inside_start_period_are_not_counted(self):
        tracker = HealthTracker("backend", HealthCheck(test="true", interval=5, start_period=15, retries=1))
        tracker.start()
        self.assertFalse(is_ready(tracker, ProbeResult(ok=False, at=5)))
        self.assertFalse(is_ready(tracker, ProbeResult(ok=False, at=10)))
        self.assertEqual(tracker.state, HealthState.STARTING)
        self.assertTrue(is_ready(tracker, ProbeResult(ok=True, at=15)))
        self.assertEqual(tracker.state, HealthState.HEALTHY)

    def test_failures_after_start_period_become_unhealthy(self):
        tracker = HealthTracker("backend", HealthCheck(test="true", interval=5, start_period=5, retries=2))
        tracker.start()
        tracker.record(ProbeResult(ok=False, at=10))
        self.assertEqual(tracker.state, HealthState.STARTING)
        tracker.record(ProbeResult(ok=False, at=15))
        self.assertEqual(tracker.state, HealthState.UNHEALTHY)
        self.assertFalse(tracker.ready)

    def test_recovery_after_unhealthy(self):
        tracker = HealthTracker("backend", HealthCheck(test="true", interval=5, retries=1))
        tracker.record(ProbeResult(ok=False, at=5))
        self.assertEqual(tracker.state, HealthState.UNHEALTHY)
        tracker.record(ProbeResult(ok=True, at=10))
        self.assertEqual(tracker.state, HealthState.HEALTHY)

    def test_readiness_is_sticky(self):
        tracker = HealthTracker("backend", HealthCheck(test="true", interval=5, retries=1))
        self.assertTrue(is_ready(tracker, ProbeResult(ok=True, at=5)))
        self.assertTrue(is_ready(tracker, ProbeResult(ok=False, at=10)))
        self.assertEqual(tracker.state, HealthState.UNHEALTHY)

    def test_slow_probe_counts_as_failure(self):
        tracker = HealthTracker("backend", HealthCheck(test="true", timeout=1, retries=1))
        self.assertFalse(is_ready(tracker, ProbeResult(ok=True, at=30, duration=2)))

    def test_positional_result_carries_output(self):
        tracker = HealthTracker("backend", HealthCheck(test="true", retries=1))
        result = ProbeResult(True, 1.0, "ok")
        self.assertEqual(result.output, "ok")
        self.assertEqual(result.duration, 0.0)
        self.assertTrue(is_ready(tracker, result))


class ReadinessGateTests(unittest.TestCase):
    def test_dependent_waits_for_healthy(self):
        gate = ReadinessGate(_two_service_topology())
        self.assertTrue(gate.can_start("backend"))
        self.assertFalse(gate.can_start("dashboard"))
        gate.tracker("backend").start()
        self.assertFalse(gate.can_start("dashboard"))
        gate.tracker("backend").record(ProbeResult(ok=True, at=5))
        self.assertTrue(gate.can_start("dashboard"))

    def test_unhealthy_dependency_raises(self):
        gate = ReadinessGate(_two_service_topology(retries=1))
        gate.tracker("backend").record(ProbeResult(ok=False, at=10))
        with self.assertRaises(HealthGateTimeout) as ctx:
            gate.check("dashboard")
        self.assertEqual(ctx.exception.dependency, "backend")
        self.assertEqual(ctx.exception.dependents, ["dashboard"])

    def test_completed_condition(self):
        topology = Topology(
            services={
                "migrate": ServiceSpec(name="migrate", image="migrate"),
                "app": ServiceSpec(
                    name="app",
                    image="app",
                    depends_on=[ServiceDependency(service="migrate", condition=DependencyCondition.COMPLETED)],
                ),
            }
        )
        gate = ReadinessGate(topology)
        gate.tracker("migrate").start()
        self.assertFalse(gate.can_start("app"))
        gate.tracker("migrate").mark_exited(0)
        self.assertTrue(gate.can_start("app"))


class SimulateStartupTests(unittest.TestCase):
    def test_fail_then_success_releases_dashboard_on_second_probe(self):
        timeline = simulate_startup(_two_service_topology(), {"backend": [False, True]})
        self.assertEqual(timeline.first_time("backend", HealthState.HEALTHY), 10.0)
        self.assertEqual(timeline.first_time("dashboard", HealthState.STARTING), 10.0)
        self.assertEqual(timeline.states_of("dashboard"), [HealthState.PENDING, HealthState.STARTING])

    def test_three_probes_inside_grace_period(self):
        topology = _two_service_topology(interval=5.0, start_period=15.0)
        timeline = simulate_startup(topology, {"backend": [False, False, True]})
        self.assertEqual(timeline.first_time("dashboard", HealthState.STARTING), 15.0)

    def test_never_healthy_raises_instead_of_hanging(self):
        with self.assertRaises(HealthGateTimeout) as ctx:
            simulate_startup(_two_service_topology(), {"backend": [False] * 10})
        self.assertEqual(ctx.exception.dependents, ["dashboard"])

    def test_exhausted_probe_script_raises(self):
        with self.assertRaises(HealthGateTimeout):
            simulate_startup(_two_service_topology(), {"backend": [False]})

    def test_max_time_bounds_the_simulation(self):
        topology = _two_service_topology(interval=60.0, start_period=600.0)
        with self.assertRaises(HealthGateTimeout):
            simulate_startup(topology, {"backend": [False] * 20}, max_time=120.0)

    def test_builtin_topology(self):
        timeline = simulate_startup(build_default_topology(), {"backend": [True]})
        self.assertEqual(
            timeline.final_states(),
            {"backend": HealthState.HEALTHY, "dashboard": HealthState.STARTING},
        )

    def test_failed_completion_blocks_dependents(self):
        topology = Topology(
            services={
                "migrate": ServiceSpec(name="migrate", image="migrate"),
                "app": ServiceSpec(
                    name="app",
                    image="app",
                    depends_on=[ServiceDependency(service="migrate", condition=DependencyCondition.COMPLETED)],
                ),
            }
        )
        self.assertEqual(
            simulate_startup(topology, {}, exit_codes={"migrate": 0}).final_states()["app"],
            HealthState.STARTING,
        )
        with self.assertRaises(HealthGateTimeout):
            simulate_startup(topology, {}, exit_codes={"migrate": 1})


if __name__ == "__main__":
    unittest.main()
