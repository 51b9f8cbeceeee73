# chiseg/__init__.py
"""
chiseg: Chi profile segmentation

This package fits piecewise linear models to channel profiles in
chi-elevation space and summarizes the fitted slopes (m_chi) and
intercepts (b_chi) over a whole channel network.

Main Functions
-------------
partition_profile : Optimal linear segments of one channel profile
monte_carlo_segments : Resampled per node slope and intercept statistics
merge_channels : Combine the statistics of many channels into one table
extract_chi_segments : Run the whole workflow over a channel network

"""

from loguru import logger

from .config import ChiSegConfig
from .config import ChiConfig
from .config import SegmentConfig
from .config import MonteCarloConfig
from .config import MergeConfig
from .config import DuplicatePolicy
from .errors import ChiSegError
from .errors import InvalidProfileError
from .errors import DegenerateRangeError
from .errors import InsufficientProfileLengthError
from .errors import DuplicateNodeConflict
from .profile.channel import ChannelProfile
from .profile.channel import calculate_chi
from .segment.fit import Segment
from .segment.fit import fit_segment
from .segment.partition import Partition
from .segment.partition import partition_profile
from .montecarlo import NodeStatistic
from .montecarlo import monte_carlo_segments
from .montecarlo import summarize_monte_carlo
from .merge import GlobalNodeTable
from .merge import merge_channels
from .core import extract_chi_segments
from .core import load_channel
from .export import write_chi_data_csv
from .export import chi_map_to_csv
from .export import node_table_to_geodataframe

logger.disable("chiseg")

__all__ = [
    # main
    "extract_chi_segments",
    "load_channel",
    # Configuration
    "ChiSegConfig",
    "ChiConfig",
    "SegmentConfig",
    "MonteCarloConfig",
    "MergeConfig",
    "DuplicatePolicy",
    # Errors
    "ChiSegError",
    "InvalidProfileError",
    "DegenerateRangeError",
    "InsufficientProfileLengthError",
    "DuplicateNodeConflict",
    # Core data structures
    "ChannelProfile",
    "Segment",
    "Partition",
    "NodeStatistic",
    "GlobalNodeTable",
    # Main analytical functions
    "calculate_chi",
    "fit_segment",
    "partition_profile",
    "monte_carlo_segments",
    "summarize_monte_carlo",
    "merge_channels",
    # Export
    "write_chi_data_csv",
    "chi_map_to_csv",
    "node_table_to_geodataframe",
]

__version__ = "0.1.0"
