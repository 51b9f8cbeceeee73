"""
Monte Carlo resampling of a channel profile.

Every iteration partitions a thinned view of the channel (every skip-th
node from a random offset, optionally with a random fraction of interior
nodes dropped) and records, for each node in the view, the slope and
intercept of the segment it falls in. The per node mean and variance are
accumulated with Welford's update over the iterations the node appeared in.
"""
from dataclasses import dataclass
from typing import Dict

import numpy as np
import pandas as pd
from loguru import logger

from chiseg.errors import DegenerateRangeError
from chiseg.errors import InsufficientProfileLengthError
from chiseg.segment.partition import partition_profile

logger.bind(module="montecarlo")


@dataclass
class NodeStatistic:
    """
    Running statistics of m_chi and b_chi for one node.

    m2_m and m2_b hold the sums of squared deviations from the means, the
    variances are population variances (zero for a single sample).
    """

    n_samples: int
    mean_m: float
    mean_b: float
    m2_m: float = 0.0
    m2_b: float = 0.0

    @property
    def var_m(self) -> float:
        return self.m2_m / self.n_samples if self.n_samples else float("nan")

    @property
    def var_b(self) -> float:
        return self.m2_b / self.n_samples if self.n_samples else float("nan")

    @property
    def std_m(self) -> float:
        return float(np.sqrt(self.var_m))

    @property
    def std_b(self) -> float:
        return float(np.sqrt(self.var_b))

    def combine(self, other: "NodeStatistic") -> "NodeStatistic":
        """Pool the samples of two statistics (Chan et al. parallel update)"""
        n = self.n_samples + other.n_samples
        if n == 0:
            return NodeStatistic(0, float("nan"), float("nan"))
        dm = other.mean_m - self.mean_m
        db = other.mean_b - self.mean_b
        weight = self.n_samples * other.n_samples / n
        return NodeStatistic(
            n_samples=n,
            mean_m=self.mean_m + dm * other.n_samples / n,
            mean_b=self.mean_b + db * other.n_samples / n,
            m2_m=self.m2_m + other.m2_m + dm * dm * weight,
            m2_b=self.m2_b + other.m2_b + db * db * weight,
        )


def resample_indices(n_nodes, skip, omit_fraction, rng) -> np.ndarray:
    """
    Positions of the nodes kept in one Monte Carlo view.

    Every skip-th node is taken starting at an offset drawn from [0, skip).
    A fraction omit_fraction of the interior nodes is then dropped at random,
    the first and last kept nodes always stay.
    """
    offset = int(rng.integers(0, skip))
    indices = np.arange(offset, n_nodes, skip)

    if omit_fraction > 0 and len(indices) > 2:
        interior = indices[1:-1]
        n_omit = int(round(omit_fraction * len(interior)))
        if n_omit:
            drop = rng.choice(len(interior), size=n_omit, replace=False)
            interior = np.delete(interior, drop)
            indices = np.concatenate([indices[:1], interior, indices[-1:]])
    return indices


def monte_carlo_segments(
    profile,
    n_iterations: int = 20,
    skip: int = 2,
    minimum_segment_length: int = 10,
    target_nodes=None,
    sigma: float = 1.0,
    omit_fraction: float = 0.0,
    seed=None,
) -> Dict[int, NodeStatistic]:
    """
    Robust per node slope and intercept estimates for one channel.

    Parameters
    ----------
    profile : ChannelProfile
        Channel in chi-elevation space
    n_iterations : int
        Number of resampled partitions
    skip : int
        Resampling stride, 1 keeps every node
    minimum_segment_length : int
        Minimum number of nodes per segment of each partition
    target_nodes : int, optional
        Desired number of nodes per segment, see partition_profile
    sigma : float
        Elevation noise scale
    omit_fraction : float
        Fraction of interior nodes dropped from every view
    seed : int, SeedSequence or Generator, optional
        Seed of the random generator. Fixing it makes the result
        reproducible

    Returns
    -------
    dict
        node id -> NodeStatistic for every node that appeared in at least one
        successful iteration
    """
    if n_iterations < 1:
        raise ValueError("n_iterations must be at least 1")
    if skip < 1:
        raise ValueError("skip must be at least 1")
    if not 0 <= omit_fraction < 1:
        raise ValueError("omit_fraction must be in [0, 1)")

    rng = np.random.default_rng(seed)
    n = len(profile)

    count = np.zeros(n, dtype=np.int64)
    mean_m = np.zeros(n)
    mean_b = np.zeros(n)
    m2_m = np.zeros(n)
    m2_b = np.zeros(n)

    n_skipped = 0
    for iteration in range(n_iterations):
        indices = resample_indices(n, skip, omit_fraction, rng)
        view = profile.take(indices)
        try:
            partition = partition_profile(
                view, minimum_segment_length, target_nodes, sigma
            )
        except (InsufficientProfileLengthError, DegenerateRangeError) as e:
            logger.debug(f"Skipping iteration {iteration}: {e}")
            n_skipped += 1
            continue

        # indices are unique within a view, so fancy indexed updates are safe
        count[indices] += 1
        k = count[indices]

        m = partition.node_slopes()
        delta = m - mean_m[indices]
        mean_m[indices] += delta / k
        m2_m[indices] += delta * (m - mean_m[indices])

        b = partition.node_intercepts()
        delta = b - mean_b[indices]
        mean_b[indices] += delta / k
        m2_b[indices] += delta * (b - mean_b[indices])

    if n_skipped:
        logger.debug(
            f"Channel {profile.channel_id}: {n_skipped} of {n_iterations} "
            "iterations could not be partitioned"
        )

    stats = {}
    for pos in np.flatnonzero(count):
        stats[int(profile.node_ids[pos])] = NodeStatistic(
            n_samples=int(count[pos]),
            mean_m=float(mean_m[pos]),
            mean_b=float(mean_b[pos]),
            m2_m=float(m2_m[pos]),
            m2_b=float(m2_b[pos]),
        )
    return stats


def summarize_monte_carlo(profile, stats: Dict[int, NodeStatistic]) -> pd.DataFrame:
    """Per node table of a channel's Monte Carlo statistics, in channel order"""
    rows = []
    for node, chi, elevation in zip(profile.node_ids, profile.chi, profile.elevation):
        stat = stats.get(int(node))
        if stat is None:
            continue
        rows.append(
            {
                "node": int(node),
                "chi": chi,
                "elevation": elevation,
                "m_chi": stat.mean_m,
                "b_chi": stat.mean_b,
                "m_chi_std": stat.std_m,
                "b_chi_std": stat.std_b,
                "n_samples": stat.n_samples,
            }
        )
    columns = [
        "node", "chi", "elevation", "m_chi", "b_chi", "m_chi_std", "b_chi_std", "n_samples"
    ]
    return pd.DataFrame(rows, columns=columns)
