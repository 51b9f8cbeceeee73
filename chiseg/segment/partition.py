"""
Split a chi-elevation profile into the linear segments that minimize a
penalized fit score.

score = sum(residual_k / sigma**2) + AIC_PENALTY * n_segments

The search is a dynamic program over breakpoints. best[j] is the optimal
score of the prefix [0, j), and every candidate segment [i, j) is evaluated
from prefix sums, so the whole search is O(N^2).
"""
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import pandas as pd
from loguru import logger

from chiseg.errors import InsufficientProfileLengthError
from chiseg.segment.fit import PrefixSums
from chiseg.segment.fit import Segment
from chiseg.segment.fit import fit_segment

logger.bind(module="partition")

# two fitted parameters (slope, intercept) per segment
AIC_PENALTY = 4.0

# scores closer than this (relative) are treated as ties
TIE_RTOL = 1e-9


@dataclass
class Partition:
    """Ordered, contiguous segments covering a whole profile"""

    segments: List[Segment]
    score: float
    degenerate: bool = False

    @property
    def n_nodes(self) -> int:
        return self.segments[-1].end if self.segments else 0

    @property
    def n_segments(self) -> int:
        return len(self.segments)

    @property
    def breakpoints(self) -> np.ndarray:
        """[0, b_1, ..., N] node positions where segments begin and end"""
        return np.array([0] + [seg.end for seg in self.segments], dtype=np.int64)

    def _broadcast(self, attr) -> np.ndarray:
        values = [getattr(seg, attr) for seg in self.segments]
        counts = [seg.n_nodes for seg in self.segments]
        return np.repeat(np.asarray(values, dtype=float), counts)

    def node_slopes(self) -> np.ndarray:
        """m_chi of the segment holding each node"""
        return self._broadcast("slope")

    def node_intercepts(self) -> np.ndarray:
        """b_chi of the segment holding each node"""
        return self._broadcast("intercept")

    def segment_index(self) -> np.ndarray:
        counts = [seg.n_nodes for seg in self.segments]
        return np.repeat(np.arange(len(self.segments)), counts)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "start": [seg.start for seg in self.segments],
                "end": [seg.end for seg in self.segments],
                "m_chi": [seg.slope for seg in self.segments],
                "b_chi": [seg.intercept for seg in self.segments],
                "residual": [seg.residual for seg in self.segments],
            }
        )


def partition_profile(
    profile,
    minimum_segment_length: int = 10,
    target_nodes: Optional[int] = None,
    sigma: float = 1.0,
) -> Partition:
    """
    Find the optimal piecewise linear partition of a channel profile.

    Parameters
    ----------
    profile : ChannelProfile
        Channel in chi-elevation space
    minimum_segment_length : int
        Minimum number of nodes per segment
    target_nodes : int, optional
        Desired number of nodes per segment. Caps the number of segments at
        ceil(N / target_nodes)
    sigma : float
        Elevation noise scale used to normalize the residuals

    Returns
    -------
    Partition
        The best partition. If the profile is shorter than
        minimum_segment_length, a single segment over the whole profile
        flagged as degenerate

    Raises
    ------
    InsufficientProfileLengthError
        If the profile has fewer than 2 nodes
    DegenerateRangeError
        If the profile has no chi variation at all
    """
    if minimum_segment_length < 2:
        raise ValueError("minimum_segment_length must be at least 2")
    if sigma <= 0:
        raise ValueError("sigma must be positive")

    n = len(profile)
    if n < 2:
        raise InsufficientProfileLengthError(n, 2)

    try:
        if n < minimum_segment_length:
            raise InsufficientProfileLengthError(n, minimum_segment_length)

        result = _search(profile, minimum_segment_length, target_nodes, sigma)
        if result is None:
            raise InsufficientProfileLengthError(n, minimum_segment_length)
    except InsufficientProfileLengthError as e:
        logger.debug(f"Falling back to a single segment: {e}")
        segment = fit_segment(profile, 0, n)
        score = segment.residual / sigma**2 + AIC_PENALTY
        return Partition([segment], score, degenerate=True)

    breakpoints, score = result
    segments = [
        fit_segment(profile, start, end)
        for start, end in zip(breakpoints[:-1], breakpoints[1:])
    ]
    return Partition(segments, score)


def max_segments(n_nodes, minimum_segment_length, target_nodes=None) -> int:
    """Largest number of segments a partition of n_nodes may hold"""
    limit = n_nodes // minimum_segment_length
    if target_nodes is not None:
        limit = min(limit, math.ceil(n_nodes / target_nodes))
    return max(limit, 1)


def _pick(scores, evenness) -> Optional[int]:
    """
    Position of the lowest score. Scores within TIE_RTOL of the lowest are
    resolved by the smallest sum of squared segment lengths, then by the
    lowest position.
    """
    finite = np.isfinite(scores)
    if not finite.any():
        return None
    lowest = scores[finite].min()
    tol = TIE_RTOL * max(1.0, abs(lowest))
    tied = np.flatnonzero(scores <= lowest + tol)
    return int(tied[np.argmin(evenness[tied])])


def _search(profile, minimum_segment_length, target_nodes, sigma):
    n = len(profile)
    sums = PrefixSums.from_profile(profile)
    limit = max_segments(n, minimum_segment_length, target_nodes)

    if limit >= n // minimum_segment_length:
        return _search_unbounded(sums, n, minimum_segment_length, sigma)
    return _search_bounded(sums, n, minimum_segment_length, sigma, limit)


def _segment_costs(sums, end, minimum_segment_length, sigma):
    starts = np.arange(0, end - minimum_segment_length + 1)
    costs = sums.residuals(starts, end) / sigma**2 + AIC_PENALTY
    return starts, costs


def _search_unbounded(sums, n, minimum_segment_length, sigma):
    best = np.full(n + 1, np.inf)
    evenness = np.full(n + 1, np.inf)
    parent = np.full(n + 1, -1, dtype=np.int64)
    best[0] = 0.0
    evenness[0] = 0.0

    for end in range(minimum_segment_length, n + 1):
        starts, costs = _segment_costs(sums, end, minimum_segment_length, sigma)
        scores = best[starts] + costs
        spread = evenness[starts] + (end - starts) ** 2
        pos = _pick(scores, spread)
        if pos is None:
            continue
        best[end] = scores[pos]
        evenness[end] = spread[pos]
        parent[end] = starts[pos]

    if not np.isfinite(best[n]):
        return None
    return _backtrack(parent, n), float(best[n])


def _search_bounded(sums, n, minimum_segment_length, sigma, limit):
    # layer k holds the best scores of prefixes split into exactly k segments
    best = np.full((limit + 1, n + 1), np.inf)
    evenness = np.full((limit + 1, n + 1), np.inf)
    parent = np.full((limit + 1, n + 1), -1, dtype=np.int64)
    best[0, 0] = 0.0
    evenness[0, 0] = 0.0

    for end in range(minimum_segment_length, n + 1):
        starts, costs = _segment_costs(sums, end, minimum_segment_length, sigma)
        for k in range(1, min(limit, end // minimum_segment_length) + 1):
            scores = best[k - 1, starts] + costs
            spread = evenness[k - 1, starts] + (end - starts) ** 2
            pos = _pick(scores, spread)
            if pos is None:
                continue
            best[k, end] = scores[pos]
            evenness[k, end] = spread[pos]
            parent[k, end] = starts[pos]

    k = _pick(best[:, n], evenness[:, n])
    if k is None:
        return None

    breakpoints = [n]
    end = n
    for layer in range(k, 0, -1):
        end = int(parent[layer, end])
        breakpoints.append(end)
    return breakpoints[::-1], float(best[k, n])


def _backtrack(parent, n):
    breakpoints = [n]
    end = n
    while end > 0:
        end = int(parent[end])
        breakpoints.append(end)
    return breakpoints[::-1]
