import numpy as np
import pytest

from chiseg.errors import DegenerateRangeError
from chiseg.errors import InsufficientProfileLengthError
from chiseg.segment.partition import AIC_PENALTY
from chiseg.segment.partition import max_segments
from chiseg.segment.partition import partition_profile

from conftest import build_profile


def test_single_line_exact_recovery(linear_profile):
    profile = linear_profile(n=60, slope=25.0, intercept=100.0)
    partition = partition_profile(profile, minimum_segment_length=10, sigma=1.0)

    assert partition.n_segments == 1
    assert not partition.degenerate
    seg = partition.segments[0]
    assert (seg.start, seg.end) == (0, 60)
    assert seg.slope == pytest.approx(25.0, abs=1e-6)
    assert seg.intercept == pytest.approx(100.0, abs=1e-6)
    assert partition.score == pytest.approx(AIC_PENALTY, abs=1e-6)


def test_two_segment_recovery(kinked_profile):
    profile = kinked_profile(n=60, kink=27, slopes=(10.0, 40.0))
    partition = partition_profile(profile, minimum_segment_length=10, sigma=1.0)

    assert partition.n_segments == 2
    assert abs(partition.breakpoints[1] - 27) <= 1
    assert partition.segments[0].slope == pytest.approx(10.0, abs=1e-6)
    assert partition.segments[1].slope == pytest.approx(40.0, abs=1e-6)


def test_tied_breakpoints_prefer_even_split(kinked_profile):
    # the kink node lies on both lines, so breaking before or after it fits
    # equally well
    profile = kinked_profile(n=60, kink=30)
    partition = partition_profile(profile, minimum_segment_length=10, sigma=1.0)

    np.testing.assert_array_equal(partition.breakpoints, [0, 30, 60])


def test_partition_is_reproducible(linear_profile):
    profile = linear_profile(n=90, noise=3.0, seed=2)
    first = partition_profile(profile, 10, None, 1.0)
    second = partition_profile(profile, 10, None, 1.0)

    np.testing.assert_array_equal(first.breakpoints, second.breakpoints)
    assert first.score == second.score


@pytest.mark.parametrize("seed", range(25))
def test_minimum_segment_length_respected(seed):
    rng = np.random.default_rng(seed)
    n = int(rng.integers(20, 150))
    min_len = int(rng.integers(2, 15))

    chi = np.cumsum(rng.uniform(0.01, 0.2, n))
    slopes = rng.uniform(-50, 50, 4)
    piece = np.minimum((np.arange(n) * 4) // n, 3)
    elevation = np.cumsum(slopes[piece] * np.gradient(chi)) + rng.normal(0, 0.5, n)
    profile = build_profile(chi, elevation)

    partition = partition_profile(profile, min_len, None, sigma=0.5)

    assert not partition.degenerate
    lengths = np.diff(partition.breakpoints)
    assert np.all(lengths >= min_len)
    assert partition.breakpoints[0] == 0
    assert partition.breakpoints[-1] == n
    for left, right in zip(partition.segments[:-1], partition.segments[1:]):
        assert left.end == right.start


def test_target_nodes_bounds_segment_count(kinked_profile):
    profile = kinked_profile(n=60, kink=30)

    unbounded = partition_profile(profile, 10, target_nodes=None, sigma=1.0)
    bounded = partition_profile(profile, 10, target_nodes=30, sigma=1.0)
    single = partition_profile(profile, 10, target_nodes=60, sigma=1.0)

    np.testing.assert_array_equal(bounded.breakpoints, unbounded.breakpoints)
    assert single.n_segments == 1
    assert not single.degenerate


def test_max_segments():
    assert max_segments(100, 10) == 10
    assert max_segments(100, 10, target_nodes=30) == 4
    assert max_segments(5, 10) == 1


def test_short_profile_degrades_to_single_segment(linear_profile):
    profile = linear_profile(n=6, slope=3.0, intercept=1.0)
    partition = partition_profile(profile, minimum_segment_length=10, sigma=1.0)

    assert partition.degenerate
    assert partition.n_segments == 1
    assert partition.segments[0].slope == pytest.approx(3.0)


def test_single_node_profile_raises(linear_profile):
    with pytest.raises(InsufficientProfileLengthError):
        partition_profile(linear_profile(n=1), minimum_segment_length=10)


def test_flat_chi_profile_raises():
    profile = build_profile(np.zeros(12), np.arange(12.0))
    with pytest.raises(DegenerateRangeError):
        partition_profile(profile, minimum_segment_length=4)


def test_node_values_broadcast(kinked_profile):
    profile = kinked_profile(n=60, kink=30)
    partition = partition_profile(profile, 10, None, 1.0)

    slopes = partition.node_slopes()
    assert len(slopes) == 60
    assert np.all(slopes[:30] == partition.segments[0].slope)
    assert np.all(slopes[30:] == partition.segments[1].slope)
    assert len(partition.node_intercepts()) == 60
    np.testing.assert_array_equal(np.bincount(partition.segment_index()), [30, 30])

    df = partition.to_dataframe()
    assert list(df.columns) == ["start", "end", "m_chi", "b_chi", "residual"]
    assert len(df) == 2


def test_invalid_arguments(linear_profile):
    profile = linear_profile(n=20)
    with pytest.raises(ValueError):
        partition_profile(profile, minimum_segment_length=1)
    with pytest.raises(ValueError):
        partition_profile(profile, sigma=0)
