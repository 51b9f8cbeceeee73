import numpy as np
import pytest

from chiseg.errors import DegenerateRangeError
from chiseg.segment.fit import PrefixSums
from chiseg.segment.fit import fit_segment

from conftest import build_profile


def test_fit_recovers_line(linear_profile):
    profile = linear_profile(n=40, slope=12.5, intercept=310.0)
    seg = fit_segment(profile, 5, 25)

    assert seg.start == 5
    assert seg.end == 25
    assert seg.n_nodes == 20
    assert seg.slope == pytest.approx(12.5, abs=1e-9)
    assert seg.intercept == pytest.approx(310.0, abs=1e-9)
    assert seg.residual == pytest.approx(0.0, abs=1e-9)


def test_fit_matches_numpy_polyfit(linear_profile):
    profile = linear_profile(n=50, noise=2.0, seed=3)
    seg = fit_segment(profile, 0, 50)

    slope, intercept = np.polyfit(profile.chi, profile.elevation, 1)
    predicted = slope * profile.chi + intercept
    rss = np.sum((profile.elevation - predicted) ** 2)

    assert seg.slope == pytest.approx(slope)
    assert seg.intercept == pytest.approx(intercept)
    assert seg.residual == pytest.approx(rss)


def test_fit_degenerate_range():
    profile = build_profile([1.0, 1.0, 1.0, 2.0], [5.0, 6.0, 7.0, 8.0])
    with pytest.raises(DegenerateRangeError):
        fit_segment(profile, 0, 3)


def test_fit_requires_two_nodes(linear_profile):
    profile = linear_profile(n=10)
    with pytest.raises(ValueError):
        fit_segment(profile, 3, 4)
    with pytest.raises(ValueError):
        fit_segment(profile, 5, 11)


def test_prefix_sums_match_direct_fit(linear_profile):
    profile = linear_profile(n=80, slope=-3.0, intercept=2000.0, noise=1.5, seed=11)
    sums = PrefixSums.from_profile(profile)

    for start, end in [(0, 80), (0, 2), (13, 47), (60, 80)]:
        direct = fit_segment(profile, start, end)
        fast = sums.fit(start, end)
        assert fast.slope == pytest.approx(direct.slope, rel=1e-8)
        assert fast.intercept == pytest.approx(direct.intercept, rel=1e-8)
        assert fast.residual == pytest.approx(direct.residual, rel=1e-6, abs=1e-8)


def test_prefix_sums_vectorized_residuals(linear_profile):
    profile = linear_profile(n=30, noise=1.0, seed=5)
    sums = PrefixSums.from_profile(profile)

    starts = np.arange(0, 20)
    rss = sums.residuals(starts, 25)
    expected = [fit_segment(profile, s, 25).residual for s in starts]
    np.testing.assert_allclose(rss, expected, rtol=1e-6, atol=1e-8)


def test_prefix_sums_degenerate_is_inf():
    chi = [0.0, 0.0, 0.0, 1.0, 2.0]
    sums = PrefixSums(chi, [1.0, 2.0, 3.0, 4.0, 5.0])

    rss = sums.residuals(np.array([0, 1, 2]), 3)
    assert np.all(np.isinf(rss[:2]))
    with pytest.raises(DegenerateRangeError):
        sums.fit(0, 3)
