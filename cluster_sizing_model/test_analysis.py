"""
Tests for profile comparison and cluster breakdown utilities.

Run with: pytest test_analysis.py -v
"""

import pytest
from .analysis import (
    cluster_breakdown, compare_profiles, evaluate_profiles, sizing_summary, _pct_diff,
)
from .demand import GIB_PER_TIB, ResourceDemand
from .model import InfrastructureReservation, NodeProfile, SizingConfig, compute_sizing


@pytest.fixture
def profiles():
    return [
        NodeProfile("flash", physical_cores=48, memory_gib=384,
                    flash_device_count=8, flash_device_capacity_gib=3200),
        NodeProfile("diskless", physical_cores=48, memory_gib=384),
        NodeProfile("small", physical_cores=16, memory_gib=128),
    ]


@pytest.fixture
def demand():
    return ResourceDemand.from_totals(vcpus=2000, memory_gib=8000, storage_gib=30000, vm_count=400)


class TestEvaluateProfiles:
    def test_one_row_per_profile(self, demand, profiles):
        rows = evaluate_profiles(demand, profiles)
        assert [r['name'] for r in rows] == ["flash", "diskless", "small"]
        assert all(r['total_nodes'] % 3 == 0 for r in rows)
        assert rows[1]['nodes_for_storage'] == 0
        assert rows[0]['has_local_flash'] and not rows[1]['has_local_flash']

    def test_empty_demand(self, profiles):
        rows = evaluate_profiles(ResourceDemand.from_totals(0, 0, 0, 0), profiles)
        assert all(r['total_nodes'] is None for r in rows)
        assert all(r['all_passes'] is None for r in rows)


class TestCompareProfiles:
    def test_comparisons_against_baseline(self, demand, profiles):
        result = compare_profiles(demand, profiles, baseline_idx=1)
        assert result['summary']['baseline'] == "diskless"
        assert set(result['comparisons']) == {"flash", "small"}
        by_name = {r['name']: r for r in result['profiles']}
        small = result['comparisons']['small']
        assert small['nodes_diff_abs'] == by_name['small']['total_nodes'] - by_name['diskless']['total_nodes']
        assert small['nodes_diff_abs'] > 0

    def test_no_profiles(self, demand):
        assert compare_profiles(demand, []) == {'profiles': [], 'comparisons': {}, 'summary': {}}

    def test_pct_diff(self):
        assert _pct_diff(12, 10) == pytest.approx(20)
        assert _pct_diff(5, 0) == 0.0


class TestClusterBreakdown:
    @pytest.fixture
    def simple(self):
        """No reservation or overhead: every segment is easy to check by hand."""
        config = SizingConfig(
            cpu_overcommit_ratio=1.0,
            hyperthreading_enabled=False,
            cpu_fixed_overhead_per_vm=0.0,
            cpu_proportional_overhead_pct=0.0,
            memory_fixed_overhead_per_vm_mib=0.0,
            memory_proportional_overhead_pct=0.0,
            annual_growth_rate_percent=0.0,
            virtualization_storage_overhead_percent=0.0,
            replication_factor=2,
            operational_capacity_fraction=0.5,
            storage_overhead_fraction=0.0,
            eviction_threshold_percent=100.0,
            reservation=InfrastructureReservation.none(),
        )
        profile = NodeProfile("p", physical_cores=10, memory_gib=100,
                              flash_device_count=1, flash_device_capacity_gib=400)
        demand = ResourceDemand.from_totals(vcpus=30, memory_gib=300, storage_gib=100, vm_count=3)
        capacity, req = compute_sizing(demand, profile, config)
        return profile, capacity, req, config

    def test_cpu_and_memory(self, simple):
        profile, capacity, req, config = simple
        # cpu 3, memory 3, storage 1 -> 3 + 2 = 5 -> 6 nodes
        assert req.total_nodes == 6
        b = cluster_breakdown(profile, capacity, req, config)
        assert b['cpu']['raw_vcpus'] == pytest.approx(60)
        assert b['cpu']['workload_vcpus'] == 30
        assert b['cpu']['infrastructure_vcpus'] == 0
        assert b['cpu']['free_vcpus'] == pytest.approx(30)
        assert b['cpu']['utilization_pct'] == pytest.approx(50)
        assert b['memory']['raw_gib'] == pytest.approx(600)
        assert b['memory']['free_gib'] == pytest.approx(300)

    def test_storage_segments(self, simple):
        profile, capacity, req, config = simple
        s = cluster_breakdown(profile, capacity, req, config)['storage']
        assert s['raw_gib'] == 2400
        assert s['vm_data_gib'] == 100
        assert s['growth_gib'] == 0
        assert s['virtualization_overhead_gib'] == 0
        assert s['replica_gib'] == pytest.approx(100)
        assert s['reserve_gib'] == pytest.approx(200)
        assert s['metadata_gib'] == 0
        assert s['free_raw_gib'] == pytest.approx(2000)

    def test_growth_and_metadata_segments(self):
        config = SizingConfig(annual_growth_rate_percent=10, planning_horizon_years=1,
                              virtualization_storage_overhead_percent=20)
        profile = NodeProfile("p", physical_cores=48, memory_gib=384,
                              flash_device_count=8, flash_device_capacity_gib=3200)
        demand = ResourceDemand.from_totals(vcpus=100, memory_gib=100, storage_gib=1000, vm_count=10)
        capacity, req = compute_sizing(demand, profile, config)
        s = cluster_breakdown(profile, capacity, req, config)['storage']
        assert s['growth_gib'] == pytest.approx(100)
        assert s['virtualization_overhead_gib'] == pytest.approx(220)
        used = 1000 * 1.1 * 1.2
        assert s['metadata_gib'] == pytest.approx(used * 3 / 0.75 * 0.15 / 0.85)

    def test_infrastructure_reservation(self):
        config = SizingConfig()
        profile = NodeProfile("p", physical_cores=48, memory_gib=384,
                              flash_device_count=8, flash_device_capacity_gib=3200)
        demand = ResourceDemand.from_totals(vcpus=100, memory_gib=100, storage_gib=100, vm_count=10)
        capacity, req = compute_sizing(demand, profile, config)
        b = cluster_breakdown(profile, capacity, req, config)
        assert b['cpu']['infrastructure_vcpus'] == 22 * req.total_nodes
        assert b['memory']['infrastructure_gib'] == 65 * req.total_nodes


class TestSizingSummary:
    def test_handoff_record(self):
        profile = NodeProfile("p", physical_cores=48, memory_gib=384,
                              flash_device_count=8, flash_device_capacity_gib=3200)
        demand = ResourceDemand.from_totals(vcpus=100, memory_gib=100, storage_gib=1000, vm_count=10)
        _, req = compute_sizing(demand, profile, SizingConfig())
        summary = sizing_summary("p", req)
        assert summary == {
            'compute_nodes': req.total_nodes,
            'compute_profile': "p",
            # 1000 * 1.44 * 1.15 = 1656 GiB -> 2 TiB
            'storage_tib': 2,
            'use_local_flash': True,
        }

    def test_storage_in_whole_tib(self):
        profile = NodeProfile("p", physical_cores=48, memory_gib=384,
                              flash_device_count=8, flash_device_capacity_gib=3200)
        demand = ResourceDemand.from_totals(vcpus=100, memory_gib=100, storage_gib=5000, vm_count=10)
        _, req = compute_sizing(demand, profile, SizingConfig())
        # 5000 * 1.656 = 8280 GiB -> 8.09 TiB
        assert GIB_PER_TIB == 1024
        assert sizing_summary("p", req)["storage_tib"] == 9

    def test_none(self):
        assert sizing_summary("p", None) is None
