import json

from dataclasses import dataclass
from dataclasses import field
from dataclasses import fields
from dataclasses import asdict

from enum import Enum
from typing import Optional

import toml
from loguru import logger


class DuplicatePolicy(str, Enum):
    """Resolution of a node that several channels drain through"""

    FIRST = "first"
    LAST = "last"
    MEAN = "mean"


@dataclass
class ChiConfig:
    """Parameters for the Chi Coordinate

    Parameters
    ----------
    A_0 : float, default=1.0
        Reference drainage area in square meters
    m_over_n : float, default=0.5
        Concavity index used to integrate chi
    threshold_area_for_chi : float, default=0
        Cells draining less than this area in square meters are left out of
        chi maps
    """

    A_0: float = 1.0  # m^2
    m_over_n: float = 0.5
    threshold_area_for_chi: float = 0.0  # m^2

    def __post_init__(self):
        if self.A_0 <= 0:
            raise ValueError(f"A_0 must be positive, got {self.A_0}")
        if self.m_over_n <= 0:
            raise ValueError(f"m_over_n must be positive, got {self.m_over_n}")
        if self.threshold_area_for_chi < 0:
            raise ValueError("threshold_area_for_chi must not be negative")


@dataclass
class SegmentConfig:
    """Parameters for the Profile Partitioner

    Parameters
    ----------
    minimum_segment_length : int, default=10
        Minimum number of nodes in a segment
    target_nodes : int, default=80
        Desired number of nodes per segment, bounds the number of segments
        at ceil(n_nodes / target_nodes). None removes the bound
    sigma : float, default=10.0
        Assumed standard deviation of the elevation noise in meters
    """

    minimum_segment_length: int = 10  # nodes
    target_nodes: Optional[int] = 80  # nodes
    sigma: float = 10.0  # meters

    def __post_init__(self):
        if self.minimum_segment_length < 2:
            raise ValueError("minimum_segment_length must be at least 2")
        if self.target_nodes is not None and self.target_nodes < 1:
            raise ValueError("target_nodes must be at least 1 or None")
        if self.sigma <= 0:
            raise ValueError(f"sigma must be positive, got {self.sigma}")


@dataclass
class MonteCarloConfig:
    """Parameters for the Monte Carlo Resampling

    Parameters
    ----------
    n_iterations : int, default=20
        Number of resampled partitions per channel
    skip : int, default=2
        Resampling stride, every skip-th node is kept starting at a random
        offset in [0, skip)
    omit_fraction : float, default=0
        Fraction of interior nodes randomly dropped from each resampled view
    seed : int, default=None
        Seed of the random generator, None draws fresh entropy
    """

    n_iterations: int = 20
    skip: int = 2  # nodes
    omit_fraction: float = 0.0
    seed: Optional[int] = None

    def __post_init__(self):
        if self.n_iterations < 1:
            raise ValueError("n_iterations must be at least 1")
        if self.skip < 1:
            raise ValueError("skip must be at least 1")
        if not 0 <= self.omit_fraction < 1:
            raise ValueError("omit_fraction must be in [0, 1)")


@dataclass
class MergeConfig:
    """Parameters for merging channels into one node table

    Parameters
    ----------
    duplicate_policy : DuplicatePolicy or str, default="first"
        How a node shared by several channels is resolved. One of "first"
        (keep the first channel's value), "last" (keep the last channel's
        value) or "mean" (pool the samples of all channels)
    """

    duplicate_policy: DuplicatePolicy = DuplicatePolicy.FIRST

    def __post_init__(self):
        policy = self.duplicate_policy
        if isinstance(policy, str) and not isinstance(policy, DuplicatePolicy):
            policy = policy.lower()
        try:
            self.duplicate_policy = DuplicatePolicy(policy)
        except ValueError:
            choices = [p.value for p in DuplicatePolicy]
            raise ValueError(f"duplicate_policy needs to be one of {choices}")


@dataclass
class ChiSegConfig:
    """Complete Configuration for the Chi Segmentation Workflow
    Parameters
    ----------
    chi : ChiConfig
        Chi coordinate parameters. Run help(ChiConfig) for details
    segment : SegmentConfig
        Partitioner parameters. Run help(SegmentConfig) for details
    monte_carlo : MonteCarloConfig
        Resampling parameters. Run help(MonteCarloConfig) for details
    merge : MergeConfig
        Network merge parameters. Run help(MergeConfig) for details
    workers : int, default=None
        Number of worker processes, None uses all available cores and 1
        runs the channels sequentially

    Examples
    --------
    Create a configuration with default parameters:

    >>> config = ChiSegConfig()

    Create a configuration with custom parameters:

    >>> config = ChiSegConfig()
    >>> config.segment.minimum_segment_length = 15

    """

    chi: ChiConfig = field(default_factory=ChiConfig)
    segment: SegmentConfig = field(default_factory=SegmentConfig)
    monte_carlo: MonteCarloConfig = field(default_factory=MonteCarloConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    workers: Optional[int] = None

    def to_dict(self):
        """Convert the entire config to a nested dictionary"""
        return asdict(self)

    @classmethod
    def from_dict(cls, params: dict) -> "ChiSegConfig":
        """
        Build a configuration from a nested dictionary, e.g. a parsed toml
        parameter file. Missing sections and keys keep their defaults,
        unknown keys are ignored with a warning.
        """
        sections = {
            "chi": ChiConfig,
            "segment": SegmentConfig,
            "monte_carlo": MonteCarloConfig,
            "merge": MergeConfig,
        }
        kwargs = {}
        for key, value in params.items():
            if key in sections:
                kwargs[key] = _build_section(sections[key], value, key)
            elif key == "workers":
                kwargs[key] = value
            else:
                logger.warning(f"Ignoring unknown configuration section: {key}")
        return cls(**kwargs)

    @classmethod
    def from_toml(cls, path) -> "ChiSegConfig":
        return cls.from_dict(toml.load(path))

    def __str__(self) -> str:
        """Convert the config to a string"""
        return json.dumps(self.to_dict(), indent=4)


def _build_section(section_cls, values, name):
    known = {f.name for f in fields(section_cls)}
    kwargs = {}
    for key, value in values.items():
        if key in known:
            kwargs[key] = value
        else:
            logger.warning(f"Ignoring unknown parameter: {name}.{key}")
    return section_cls(**kwargs)
