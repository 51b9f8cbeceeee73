"""
Least squares fits of elevation against chi over contiguous node ranges.

fit_segment fits a single range directly from the profile values.
PrefixSums holds cumulative sums of a whole profile so that the fit of any
range, or of many ranges sharing an end node, is a constant time lookup.
"""
from dataclasses import dataclass

import numpy as np

from chiseg.errors import DegenerateRangeError


@dataclass(frozen=True)
class Segment:
    """Linear fit over the half open node range [start, end)"""

    start: int
    end: int
    slope: float  # m_chi
    intercept: float  # b_chi
    residual: float  # sum of squared elevation residuals

    @property
    def n_nodes(self) -> int:
        return self.end - self.start


def _check_range(start, end, n):
    if start < 0 or end > n:
        raise ValueError(f"Range [{start}, {end}) outside profile of {n} nodes")
    if end - start < 2:
        raise ValueError(f"Range [{start}, {end}) needs at least 2 nodes")


def fit_segment(profile, start: int, end: int) -> Segment:
    """
    Ordinary least squares regression of elevation on chi.

    Parameters
    ----------
    profile : ChannelProfile
        Channel to fit
    start : int
        First node of the range
    end : int
        One past the last node of the range

    Returns
    -------
    Segment

    Raises
    ------
    DegenerateRangeError
        If every chi value in the range is equal
    """
    _check_range(start, end, len(profile))
    x = profile.chi[start:end]
    y = profile.elevation[start:end]

    if np.ptp(x) == 0:
        raise DegenerateRangeError(start, end)

    xm = x.mean()
    ym = y.mean()
    dx = x - xm
    slope = np.dot(dx, y - ym) / np.dot(dx, dx)
    intercept = ym - slope * xm
    residual = np.sum((y - (intercept + slope * x)) ** 2)
    return Segment(int(start), int(end), float(slope), float(intercept), float(residual))


class PrefixSums:
    """
    Cumulative sums of chi, elevation and their products over a profile.

    Values are centered on the profile means before summing to limit
    cancellation in the residual formula. Index k of each array holds the
    sum over nodes [0, k).
    """

    def __init__(self, chi, elevation):
        chi = np.asarray(chi, dtype=float)
        elevation = np.asarray(elevation, dtype=float)
        self.chi = chi
        self.n = len(chi)
        self.chi_center = chi.mean() if self.n else 0.0
        self.z_center = elevation.mean() if self.n else 0.0

        x = chi - self.chi_center
        z = elevation - self.z_center

        def cumulative(values):
            return np.concatenate([[0.0], np.cumsum(values)])

        self.sx = cumulative(x)
        self.sz = cumulative(z)
        self.sxx = cumulative(x * x)
        self.sxz = cumulative(x * z)
        self.szz = cumulative(z * z)

    @classmethod
    def from_profile(cls, profile) -> "PrefixSums":
        return cls(profile.chi, profile.elevation)

    def _moments(self, starts, end):
        n = end - starts
        sx = self.sx[end] - self.sx[starts]
        sz = self.sz[end] - self.sz[starts]
        cxx = self.sxx[end] - self.sxx[starts] - sx * sx / n
        cxz = self.sxz[end] - self.sxz[starts] - sx * sz / n
        czz = self.szz[end] - self.szz[starts] - sz * sz / n
        return n, sx, sz, cxx, cxz, czz

    def fit(self, start: int, end: int) -> Segment:
        _check_range(start, end, self.n)
        # chi is monotonic, so equal end values mean no variation at all
        if self.chi[start] == self.chi[end - 1]:
            raise DegenerateRangeError(start, end)

        n, sx, sz, cxx, cxz, czz = self._moments(start, end)
        slope = cxz / cxx
        centered_intercept = (sz - slope * sx) / n
        intercept = centered_intercept + self.z_center - slope * self.chi_center
        residual = max(czz - slope * cxz, 0.0)
        return Segment(int(start), int(end), float(slope), float(intercept), float(residual))

    def residuals(self, starts: np.ndarray, end: int) -> np.ndarray:
        """
        Residual sum of squares of every range [s, end) for s in starts.
        Ranges without chi variation get inf.
        """
        starts = np.asarray(starts, dtype=np.int64)
        n, _, _, cxx, cxz, czz = self._moments(starts, end)
        degenerate = self.chi[starts] == self.chi[end - 1]

        with np.errstate(divide="ignore", invalid="ignore"):
            rss = czz - cxz * cxz / cxx
        rss = np.maximum(rss, 0.0)
        rss[degenerate | (n < 2)] = np.inf
        return rss
