"""
Unit tests for the cluster sizing model (capacity, requirements, redundancy).

Run with: pytest test_model.py -v
"""

import pytest
import math
from .demand import ResourceDemand, StorageMetric
from .model import (
    InfrastructureReservation, LimitingFactor, NodeProfile, SizingConfig,
    ClusterSizingModel, compute_node_capacity, compute_node_requirements,
    validate_redundancy, compute_sizing, cached_compute_sizing,
)


# No reservation, no overhead, no growth, no HT: node counts are plain ceilings
ZERO = SizingConfig(
    cpu_overcommit_ratio=1.0,
    hyperthreading_enabled=False,
    cpu_fixed_overhead_per_vm=0.0,
    cpu_proportional_overhead_pct=0.0,
    memory_fixed_overhead_per_vm_mib=0.0,
    memory_proportional_overhead_pct=0.0,
    annual_growth_rate_percent=0.0,
    virtualization_storage_overhead_percent=0.0,
    eviction_threshold_percent=100.0,
    reservation=InfrastructureReservation.none(),
)

# Storage efficiency of exactly 1: usable storage equals raw flash
FLAT_STORAGE = ZERO.replace(
    replication_factor=1,
    storage_overhead_fraction=0.0,
    operational_capacity_fraction=1.0,
)


def _demand(vcpus=0, memory_gib=0, storage_gib=0, vm_count=1):
    return ResourceDemand.from_totals(vcpus, memory_gib, storage_gib, vm_count)


@pytest.fixture
def flash_profile():
    return NodeProfile("bx2d-metal-96x384", physical_cores=48, memory_gib=384, vcpus=96,
                       flash_device_count=8, flash_device_capacity_gib=3200)


@pytest.fixture
def diskless_profile():
    return NodeProfile("bx2-metal-96x384", physical_cores=48, memory_gib=384, vcpus=96)


class TestInfrastructureReservation:
    """Tests for the per-node platform reservation."""

    def test_default_reservation_scales_with_devices(self):
        r = InfrastructureReservation()
        assert r.cpu_cores(0) == 6
        assert r.memory_gib(0) == 25
        assert r.cpu_cores(8) == 22
        assert r.memory_gib(8) == 65

    def test_none_reserves_nothing(self):
        r = InfrastructureReservation.none()
        assert r.cpu_cores(8) == 0
        assert r.memory_gib(8) == 0


class TestCapacityModel:
    """Tests for compute_node_capacity."""

    def test_scenario_a_cpu_capacity(self):
        """48 cores, no reservation, no HT, overcommit 5 -> 240 vCPUs."""
        profile = NodeProfile("a", physical_cores=48, memory_gib=256)
        cap = compute_node_capacity(profile, ZERO.replace(cpu_overcommit_ratio=5))
        assert cap.usable_vcpus == 240

    def test_scenario_b_storage_capacity(self):
        """100 raw, 3 replicas, 15% overhead, 75% operational -> 21 usable."""
        profile = NodeProfile("b", physical_cores=8, memory_gib=64,
                              flash_device_count=1, flash_device_capacity_gib=100)
        cap = compute_node_capacity(profile, ZERO.replace(
            replication_factor=3,
            storage_overhead_fraction=0.15,
            operational_capacity_fraction=0.75,
        ))
        assert cap.raw_storage_gib == 100
        assert cap.max_usable_storage_gib == 28
        assert cap.usable_storage_gib == 21

    def test_default_flash_profile(self, flash_profile):
        cap = compute_node_capacity(flash_profile, SizingConfig())
        assert cap.reserved_cpu_cores == 22
        assert cap.reserved_memory_gib == 65
        assert cap.available_cores == 26
        assert cap.effective_cores == pytest.approx(32.5)
        assert cap.usable_vcpus == 58
        assert cap.usable_memory_gib == 319
        assert cap.raw_storage_gib == 25600
        assert cap.max_usable_storage_gib == 7253
        assert cap.usable_storage_gib == 5439

    def test_default_diskless_profile(self, diskless_profile):
        cap = compute_node_capacity(diskless_profile, SizingConfig())
        assert cap.usable_vcpus == 94
        assert cap.usable_memory_gib == 359
        assert cap.raw_storage_gib == 0
        assert cap.usable_storage_gib == 0

    def test_hyperthreading_disabled_uses_physical_cores(self):
        profile = NodeProfile("p", physical_cores=40, memory_gib=128)
        cap = compute_node_capacity(profile, ZERO.replace(cpu_overcommit_ratio=2))
        assert cap.effective_cores == 40
        assert cap.usable_vcpus == 80

    def test_memory_overcommit(self):
        profile = NodeProfile("p", physical_cores=8, memory_gib=100)
        cap = compute_node_capacity(profile, ZERO.replace(memory_overcommit_ratio=1.5))
        assert cap.usable_memory_gib == 150

    def test_reservation_larger_than_profile_clamps_to_zero(self):
        profile = NodeProfile("tiny", physical_cores=2, memory_gib=10)
        cap = compute_node_capacity(profile, SizingConfig())
        assert cap.available_cores == 0
        assert cap.usable_vcpus == 0
        assert cap.available_memory_gib == 0
        assert cap.usable_memory_gib == 0

    def test_usable_never_exceeds_raw(self, flash_profile):
        cap = compute_node_capacity(flash_profile, SizingConfig(cpu_overcommit_ratio=1.0))
        assert cap.usable_memory_gib <= flash_profile.memory_gib
        assert cap.usable_storage_gib <= cap.max_usable_storage_gib <= cap.raw_storage_gib


class TestRequirementCalculator:
    """Tests for compute_node_requirements."""

    def test_scenario_a_nodes_for_cpu(self):
        profile = NodeProfile("a", physical_cores=48, memory_gib=256)
        config = ZERO.replace(cpu_overcommit_ratio=5)
        cap = compute_node_capacity(profile, config)
        req = compute_node_requirements(_demand(vcpus=200), cap, config)
        assert req.total_vcpus == 200
        assert req.nodes_for_cpu == 1

    def test_scenario_c_rounds_to_rack_group(self):
        """5 surviving nodes + 2 redundancy = 7 -> 9."""
        profile = NodeProfile("c", physical_cores=10, memory_gib=1000)
        cap = compute_node_capacity(profile, ZERO)
        req = compute_node_requirements(_demand(vcpus=50, memory_gib=10), cap, ZERO)
        assert req.nodes_for_cpu_at_threshold == 5
        assert req.min_surviving_nodes == 5
        assert req.pre_rounding_total == 7
        assert req.total_nodes == 9
        assert req.limiting_factor == LimitingFactor.CPU

    def test_quorum_floor(self):
        """A tiny workload still needs the quorum plus the redundancy buffer."""
        profile = NodeProfile("p", physical_cores=48, memory_gib=384)
        cap = compute_node_capacity(profile, ZERO)
        req = compute_node_requirements(_demand(vcpus=1, memory_gib=1), cap, ZERO)
        assert req.min_surviving_nodes == 3
        assert req.pre_rounding_total == 5
        assert req.total_nodes == 6
        assert req.base_nodes == 3

    def test_zero_redundancy_buffer(self):
        profile = NodeProfile("p", physical_cores=48, memory_gib=384)
        config = ZERO.replace(node_redundancy_buffer=0)
        cap = compute_node_capacity(profile, config)
        req = compute_node_requirements(_demand(vcpus=1, memory_gib=1), cap, config)
        assert req.total_nodes == 3

    def test_cpu_and_memory_overhead(self):
        profile = NodeProfile("p", physical_cores=48, memory_gib=384)
        config = SizingConfig()
        cap = compute_node_capacity(profile, config)
        req = compute_node_requirements(
            _demand(vcpus=100, memory_gib=100, vm_count=10), cap, config)
        assert req.cpu_overhead_fixed == pytest.approx(2.7)
        assert req.cpu_overhead_proportional == pytest.approx(3.0)
        assert req.total_vcpus == 106
        assert req.memory_overhead_gib == pytest.approx(10 * 378 / 1024 + 3.0)
        assert req.total_memory_gib == pytest.approx(100 + 10 * 378 / 1024 + 3.0)

    def test_storage_growth_compounds(self):
        profile = NodeProfile("p", physical_cores=48, memory_gib=384)
        config = SizingConfig()
        cap = compute_node_capacity(profile, config)
        req = compute_node_requirements(_demand(storage_gib=1000), cap, config)
        assert req.growth_multiplier == pytest.approx(1.44)
        assert req.storage_overhead_multiplier == pytest.approx(1.15)
        assert req.total_storage_gib == pytest.approx(1000 * 1.44 * 1.15)

    def test_eviction_threshold_not_applied_to_storage(self):
        profile = NodeProfile("s", physical_cores=48, memory_gib=384,
                              flash_device_count=1, flash_device_capacity_gib=100)
        config = FLAT_STORAGE.replace(eviction_threshold_percent=50)
        cap = compute_node_capacity(profile, config)
        req = compute_node_requirements(_demand(storage_gib=400), cap, config)
        assert cap.usable_storage_gib == 100
        assert req.nodes_for_storage == 4
        assert req.nodes_for_storage_at_threshold == 4

    def test_eviction_threshold_applied_to_cpu(self):
        profile = NodeProfile("p", physical_cores=10, memory_gib=1000)
        config = ZERO.replace(eviction_threshold_percent=50)
        cap = compute_node_capacity(profile, config)
        req = compute_node_requirements(_demand(vcpus=40), cap, config)
        assert req.nodes_for_cpu == 4
        assert req.nodes_for_cpu_at_threshold == 8

    def test_memory_wins_tie_with_cpu(self):
        profile = NodeProfile("t", physical_cores=10, memory_gib=10)
        cap = compute_node_capacity(profile, ZERO)
        req = compute_node_requirements(_demand(vcpus=40, memory_gib=40), cap, ZERO)
        assert req.nodes_for_cpu_at_threshold == req.nodes_for_memory_at_threshold == 4
        assert req.limiting_factor == LimitingFactor.MEMORY

    def test_storage_wins_three_way_tie(self):
        profile = NodeProfile("t", physical_cores=10, memory_gib=10,
                              flash_device_count=1, flash_device_capacity_gib=10)
        cap = compute_node_capacity(profile, FLAT_STORAGE)
        req = compute_node_requirements(
            _demand(vcpus=40, memory_gib=40, storage_gib=40), cap, FLAT_STORAGE)
        assert req.nodes_for_storage_at_threshold == 4
        assert req.limiting_factor == LimitingFactor.STORAGE

    def test_cpu_limits_when_largest(self):
        profile = NodeProfile("t", physical_cores=10, memory_gib=10)
        cap = compute_node_capacity(profile, ZERO)
        req = compute_node_requirements(_demand(vcpus=50, memory_gib=40), cap, ZERO)
        assert req.limiting_factor == LimitingFactor.CPU

    def test_diskless_storage_is_excluded(self):
        """No local flash: storage needs 0 nodes and never limits."""
        profile = NodeProfile("d", physical_cores=10, memory_gib=10)
        cap = compute_node_capacity(profile, ZERO)
        req = compute_node_requirements(
            _demand(vcpus=50, memory_gib=40, storage_gib=100000), cap, ZERO)
        assert req.nodes_for_storage == 0
        assert req.nodes_for_storage_at_threshold == 0
        assert req.limiting_factor == LimitingFactor.CPU
        assert req.total_nodes == 9

    def test_zero_capacity_dimension_does_not_raise(self):
        profile = NodeProfile("tiny", physical_cores=2, memory_gib=10)
        cap = compute_node_capacity(profile, SizingConfig())
        req = compute_node_requirements(_demand(vcpus=10, memory_gib=10), cap, SizingConfig())
        assert req.nodes_for_cpu == 0
        assert req.nodes_for_memory == 0
        assert req.total_nodes == 6


class TestSizingProperties:
    """Properties that hold across a range of inputs."""

    DEMANDS = [
        (10, 20, 100, 2),
        (500, 2000, 20000, 120),
        (3000, 12000, 150000, 800),
        (40, 4000, 500, 30),
        (200, 100, 900000, 50),
    ]

    @pytest.mark.parametrize("vcpus,memory,storage,vms", DEMANDS)
    @pytest.mark.parametrize("buffer", [0, 1, 2, 3])
    def test_total_nodes_invariants(self, flash_profile, vcpus, memory, storage, vms, buffer):
        config = SizingConfig(node_redundancy_buffer=buffer)
        _, req = compute_sizing(_demand(vcpus, memory, storage, vms), flash_profile, config)
        assert req.total_nodes % 3 == 0
        assert req.total_nodes >= 3
        assert req.total_nodes >= req.nodes_for_cpu_at_threshold + buffer
        assert req.total_nodes >= req.nodes_for_memory_at_threshold + buffer
        assert req.total_nodes >= req.nodes_for_storage_at_threshold + buffer

    @pytest.mark.parametrize("vcpus,memory,storage,vms", DEMANDS)
    def test_default_failure_count_passes(self, flash_profile, vcpus, memory, storage, vms):
        """Losing the redundancy buffer never breaks a freshly sized cluster."""
        config = SizingConfig()
        cap, req = compute_sizing(_demand(vcpus, memory, storage, vms), flash_profile, config)
        validation = validate_redundancy(req, cap, None, config)
        assert validation.failed_nodes == config.node_redundancy_buffer
        assert validation.all_passes

    def test_growth_rate_monotonic(self, flash_profile):
        demand = _demand(100, 400, 5000, 20)
        totals = []
        for rate in [0, 5, 10, 20, 35, 50]:
            _, req = compute_sizing(demand, flash_profile,
                                    SizingConfig(annual_growth_rate_percent=rate))
            totals.append(req.total_storage_gib)
        assert totals == sorted(totals)

    def test_planning_horizon_monotonic(self, flash_profile):
        demand = _demand(100, 400, 5000, 20)
        totals = []
        for years in [0, 1, 2, 3, 5]:
            _, req = compute_sizing(demand, flash_profile,
                                    SizingConfig(planning_horizon_years=years))
            totals.append(req.total_storage_gib)
        assert totals == sorted(totals)

    def test_cpu_overcommit_monotonic(self, flash_profile):
        demand = _demand(3000, 100, 100, 200)
        counts = []
        for ratio in [1.0, 1.5, 2.0, 3.0, 4.0, 8.0]:
            _, req = compute_sizing(demand, flash_profile,
                                    SizingConfig(cpu_overcommit_ratio=ratio))
            counts.append(req.nodes_for_cpu)
        assert counts == sorted(counts, reverse=True)

    def test_compute_sizing_is_idempotent(self, flash_profile):
        demand = _demand(500, 2000, 20000, 120)
        first = compute_sizing(demand, flash_profile, SizingConfig())
        second = compute_sizing(demand, flash_profile, SizingConfig())
        assert first == second


class TestRedundancyValidator:
    """Tests for validate_redundancy."""

    @pytest.fixture
    def sized(self):
        """Scenario C cluster: 9 nodes of 10 vCPUs carrying 50 vCPUs."""
        profile = NodeProfile("c", physical_cores=10, memory_gib=1000)
        cap = compute_node_capacity(profile, ZERO)
        req = compute_node_requirements(_demand(vcpus=50, memory_gib=10), cap, ZERO)
        return cap, req

    def test_scenario_d_surviving_nodes(self, sized):
        cap, req = sized
        v = validate_redundancy(req, cap, 2, ZERO)
        assert v.total_nodes == 9
        assert v.surviving_nodes == 7
        assert v.cpu_util_after_failure == pytest.approx(50 / 7 / 10 * 100)
        assert v.all_passes

    def test_scenario_d_utilization_fails_with_quorum(self, sized):
        cap, req = sized
        v = validate_redundancy(req, cap, 2, ZERO.replace(eviction_threshold_percent=60))
        assert v.surviving_nodes == 7
        assert v.quorum_passes
        assert not v.cpu_passes
        assert not v.all_passes

    def test_healthy_utilization_uses_total_nodes(self, sized):
        cap, req = sized
        v = validate_redundancy(req, cap, 2, ZERO)
        assert v.cpu_util_healthy == pytest.approx(50 / 9 / 10 * 100)
        assert v.memory_util_healthy == pytest.approx(10 / 9 / 1000 * 100)

    def test_failed_nodes_defaults_to_buffer(self, sized):
        cap, req = sized
        v = validate_redundancy(req, cap, config=ZERO)
        assert v.failed_nodes == 2
        assert v.surviving_nodes == 7

    def test_all_nodes_failed(self, sized):
        cap, req = sized
        v = validate_redundancy(req, cap, 9, ZERO)
        assert v.surviving_nodes == 0
        assert math.isinf(v.cpu_util_after_failure)
        assert not v.cpu_passes
        assert not v.quorum_passes
        assert not v.all_passes

    def test_more_failures_than_nodes(self, sized):
        cap, req = sized
        v = validate_redundancy(req, cap, 20, ZERO)
        assert v.surviving_nodes == 0
        assert not v.quorum_passes

    def test_quorum_fails_below_three(self, sized):
        cap, req = sized
        v = validate_redundancy(req, cap, 7, ZERO.replace(eviction_threshold_percent=100))
        assert v.surviving_nodes == 2
        assert not v.quorum_passes
        assert not v.all_passes

    def test_diskless_storage_always_passes(self):
        profile = NodeProfile("d", physical_cores=48, memory_gib=384)
        config = SizingConfig()
        cap, req = compute_sizing(_demand(100, 400, 1e6, 20), profile, config)
        v = validate_redundancy(req, cap, 5, config)
        assert cap.usable_storage_gib == 0
        assert v.storage_util_after_failure == 0
        assert v.storage_passes

    def test_storage_threshold_defaults_to_operational_capacity(self):
        config = SizingConfig(operational_capacity_fraction=0.6)
        assert config.storage_operational_threshold == pytest.approx(60)
        assert SizingConfig(storage_operational_threshold_percent=80).storage_operational_threshold == 80

    def test_storage_fails_over_threshold(self):
        profile = NodeProfile("s", physical_cores=48, memory_gib=384,
                              flash_device_count=1, flash_device_capacity_gib=100)
        config = FLAT_STORAGE
        cap, req = compute_sizing(_demand(storage_gib=600), profile, config)
        # 6 storage nodes + 2 buffer -> 9 nodes; 7 failures leave 2
        v = validate_redundancy(req, cap, 7, config)
        assert v.storage_util_after_failure == pytest.approx(300)
        assert not v.storage_passes

    def test_none_requirements(self, sized):
        cap, _ = sized
        assert validate_redundancy(None, cap, 2, ZERO) is None

    def test_to_dict_replaces_infinity(self, sized):
        cap, req = sized
        d = validate_redundancy(req, cap, 9, ZERO).to_dict()
        assert d['cpu_util_after_failure'] is None
        assert d['quorum_passes'] is False


class TestComputeSizing:
    """Tests for the compute_sizing pipeline and ClusterSizingModel."""

    def test_no_profile(self):
        assert compute_sizing(_demand(10, 10, 10, 1), None, SizingConfig()) == (None, None)

    def test_empty_inventory(self, flash_profile):
        cap, req = compute_sizing(_demand(0, 0, 0, 0), flash_profile, SizingConfig())
        assert cap is not None
        assert cap.usable_vcpus == 58
        assert req is None

    def test_storage_metric_follows_config(self, flash_profile):
        demand = ResourceDemand(vcpus=10, memory_gib=10, storage_gib=100, vm_count=1,
                                provisioned_storage_gib=500, in_use_storage_gib=100,
                                disk_capacity_gib=800)
        _, req = compute_sizing(demand, flash_profile, SizingConfig())
        assert req.base_storage_gib == 100
        _, req = compute_sizing(demand, flash_profile,
                                SizingConfig(storage_metric=StorageMetric.PROVISIONED))
        assert req.base_storage_gib == 500
        _, req = compute_sizing(demand, flash_profile,
                                SizingConfig(storage_metric=StorageMetric.DISK_CAPACITY))
        assert req.base_storage_gib == 800
        assert req.storage_metric == StorageMetric.DISK_CAPACITY

    def test_cached_compute_sizing(self, flash_profile):
        demand = _demand(500, 2000, 20000, 120)
        first = cached_compute_sizing(demand, flash_profile, SizingConfig())
        second = cached_compute_sizing(demand, flash_profile, SizingConfig())
        assert first is second
        assert first == compute_sizing(demand, flash_profile, SizingConfig())

    def test_model_evaluate(self, flash_profile):
        model = ClusterSizingModel()
        outcome = model.evaluate(_demand(500, 2000, 20000, 120), flash_profile)
        assert outcome.total_nodes == outcome.requirements.total_nodes
        assert outcome.validation.all_passes
        d = outcome.to_dict()
        assert d['profile'] == "bx2d-metal-96x384"
        assert d['requirements']['limiting_factor'] in ('cpu', 'memory', 'storage')

    def test_model_evaluate_empty(self, flash_profile):
        outcome = ClusterSizingModel().evaluate(_demand(0, 0, 0, 0), flash_profile)
        assert outcome.requirements is None
        assert outcome.validation is None
        assert outcome.total_nodes is None
        assert outcome.to_dict()['requirements'] is None

    def test_node_capacity(self, diskless_profile):
        cap = ClusterSizingModel(SizingConfig()).node_capacity(diskless_profile)
        assert cap.usable_vcpus == 94
