import numpy as np
import pytest
from loguru import logger

from chiseg.config import DuplicatePolicy
from chiseg.errors import DuplicateNodeConflict
from chiseg.merge import GlobalNodeTable
from chiseg.merge import merge_channels
from chiseg.montecarlo import NodeStatistic

from conftest import build_profile


@pytest.fixture
def shared_trunk():
    """Two channels whose last two nodes (100, 101) are a shared trunk"""
    a = build_profile([3.0, 2.0, 1.0, 0.0], [40.0, 30.0, 20.0, 10.0], [1, 2, 100, 101], "a")
    b = build_profile([3.0, 2.0, 1.0, 0.0], [50.0, 35.0, 20.0, 10.0], [7, 8, 100, 101], "b")

    stats_a = {n: NodeStatistic(4, 10.0, 10.0, 1.0, 1.0) for n in [1, 2, 100, 101]}
    stats_b = {n: NodeStatistic(2, 20.0, 5.0, 0.0, 0.0) for n in [7, 8, 100, 101]}
    return (a, stats_a), (b, stats_b)


def test_first_writer_wins(shared_trunk):
    table = merge_channels(shared_trunk)

    assert len(table) == 6
    assert table[100].stat.mean_m == 10.0
    assert table[100].channel == "a"
    assert table[7].stat.mean_m == 20.0
    assert len(table.conflicts) == 2
    assert all(isinstance(c, DuplicateNodeConflict) for c in table.conflicts)
    assert {c.node for c in table.conflicts} == {100, 101}
    assert table.conflicts[0].kept_channel == "a"
    assert table.conflicts[0].incoming_channel == "b"


@pytest.fixture
def log_messages():
    """Messages logged by chiseg while the test runs"""
    messages = []
    logger.enable("chiseg")
    sink_id = logger.add(messages.append, level="DEBUG", format="{message}")
    yield messages
    logger.remove(sink_id)
    logger.disable("chiseg")


def test_conflicts_are_logged(shared_trunk, log_messages):
    merge_channels(shared_trunk)

    info = [m for m in log_messages if m.record["level"].name == "INFO"]
    assert len(info) == 1
    assert "Channel b: 2 nodes already in the table" in info[0]
    assert "first" in info[0]

    debug = [m for m in log_messages if m.record["level"].name == "DEBUG"]
    assert sum("100" in m for m in debug) == 1
    assert sum("101" in m for m in debug) == 1


def test_merge_is_deterministic(shared_trunk):
    first = merge_channels(shared_trunk).to_dataframe()
    second = merge_channels(shared_trunk).to_dataframe()
    assert first.equals(second)

    reversed_order = merge_channels(shared_trunk[::-1])
    assert reversed_order[100].stat.mean_m == 20.0


def test_last_writer_wins(shared_trunk):
    table = merge_channels(shared_trunk, duplicate_policy="last")
    assert table[101].stat.mean_m == 20.0
    assert table[101].channel == "b"
    assert table[1].stat.mean_m == 10.0


def test_mean_policy_pools_samples(shared_trunk):
    table = merge_channels(shared_trunk, duplicate_policy=DuplicatePolicy.MEAN)
    stat = table[100].stat

    assert stat.n_samples == 6
    assert stat.mean_m == pytest.approx((4 * 10.0 + 2 * 20.0) / 6)
    assert stat.mean_b == pytest.approx((4 * 10.0 + 2 * 5.0) / 6)
    assert table[100].channel == "a"


def test_unsampled_nodes_are_left_out(shared_trunk):
    (a, stats_a), _ = shared_trunk
    partial = {n: s for n, s in stats_a.items() if n != 2}

    table = GlobalNodeTable()
    assert table.add_channel(a, partial) == 3
    assert 2 not in table


def test_channel_ids_default_to_position():
    profile = build_profile([1.0, 0.0], [2.0, 1.0], [5, 6])
    stats = {5: NodeStatistic(1, 1.0, 1.0), 6: NodeStatistic(1, 1.0, 1.0)}
    table = merge_channels([(profile, stats), (profile, stats)])

    assert table[5].channel == 0
    assert table.conflicts[0].incoming_channel == 1


def test_to_dataframe_sorted_by_node(shared_trunk):
    df = merge_channels(shared_trunk).to_dataframe()

    assert list(df["node"]) == [1, 2, 7, 8, 100, 101]
    assert list(df.columns[:5]) == ["node", "chi", "elevation", "m_chi", "b_chi"]
    assert np.isfinite(df["m_chi_std"]).all()
    assert list(iter(merge_channels(shared_trunk))) == [1, 2, 7, 8, 100, 101]


def test_unknown_policy():
    with pytest.raises(ValueError):
        GlobalNodeTable("median")
