from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, List, Tuple

import pandas as pd
from loguru import logger

from chiseg.config import DuplicatePolicy
from chiseg.errors import DuplicateNodeConflict
from chiseg.montecarlo import NodeStatistic

logger.bind(module="merge")

TABLE_COLUMNS = [
    "node",
    "chi",
    "elevation",
    "m_chi",
    "b_chi",
    "m_chi_std",
    "b_chi_std",
    "n_samples",
    "channel",
]


@dataclass
class NodeRecord:
    node: int
    chi: float
    elevation: float
    stat: NodeStatistic
    channel: Hashable


class GlobalNodeTable:
    """
    Node id keyed table of Monte Carlo statistics for a whole network.

    Channels are added one at a time in a canonical order. A node already in
    the table (a trunk node shared by channels draining through it) is
    resolved by the duplicate policy and recorded in conflicts.
    """

    def __init__(self, duplicate_policy=DuplicatePolicy.FIRST):
        self.duplicate_policy = DuplicatePolicy(duplicate_policy)
        self.records: Dict[int, NodeRecord] = {}
        self.conflicts: List[DuplicateNodeConflict] = []
        self.n_channels = 0

    def __len__(self):
        return len(self.records)

    def __contains__(self, node):
        return node in self.records

    def __getitem__(self, node) -> NodeRecord:
        return self.records[node]

    def __iter__(self):
        return iter(sorted(self.records))

    def add_channel(self, profile, stats: Dict[int, NodeStatistic]) -> int:
        """
        Fold one channel's statistics into the table.

        Parameters
        ----------
        profile : ChannelProfile
            Channel the statistics were computed on
        stats : dict
            node id -> NodeStatistic from monte_carlo_segments

        Returns
        -------
        int
            Number of nodes new to the table
        """
        channel = profile.channel_id
        if channel is None:
            channel = self.n_channels
        self.n_channels += 1

        n_new = 0
        n_conflicts = 0
        for node, chi, elevation in zip(
            profile.node_ids, profile.chi, profile.elevation
        ):
            node = int(node)
            stat = stats.get(node)
            if stat is None:
                logger.debug(f"Node {node} of channel {channel} was never sampled")
                continue

            existing = self.records.get(node)
            if existing is None:
                self.records[node] = NodeRecord(
                    node, float(chi), float(elevation), stat, channel
                )
                n_new += 1
                continue

            conflict = DuplicateNodeConflict(
                node, existing.channel, channel, self.duplicate_policy.value
            )
            self.conflicts.append(conflict)
            n_conflicts += 1
            logger.debug(str(conflict))
            self._resolve(existing, stat, channel)

        if n_conflicts:
            logger.info(
                f"Channel {channel}: {n_conflicts} nodes already in the table, "
                f"resolved by '{self.duplicate_policy.value}'"
            )
        return n_new

    def _resolve(self, existing: NodeRecord, stat: NodeStatistic, channel):
        if self.duplicate_policy is DuplicatePolicy.FIRST:
            return
        if self.duplicate_policy is DuplicatePolicy.LAST:
            existing.stat = stat
            existing.channel = channel
        elif self.duplicate_policy is DuplicatePolicy.MEAN:
            existing.stat = existing.stat.combine(stat)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per node, sorted by node id"""
        rows = []
        for node in self:
            record = self.records[node]
            rows.append(
                {
                    "node": node,
                    "chi": record.chi,
                    "elevation": record.elevation,
                    "m_chi": record.stat.mean_m,
                    "b_chi": record.stat.mean_b,
                    "m_chi_std": record.stat.std_m,
                    "b_chi_std": record.stat.std_b,
                    "n_samples": record.stat.n_samples,
                    "channel": record.channel,
                }
            )
        return pd.DataFrame(rows, columns=TABLE_COLUMNS)


def merge_channels(
    channel_results: Iterable[Tuple[object, Dict[int, NodeStatistic]]],
    duplicate_policy=DuplicatePolicy.FIRST,
) -> GlobalNodeTable:
    """
    Merge per channel statistics into a single node table.

    Parameters
    ----------
    channel_results : iterable of (ChannelProfile, dict)
        Channels and their node statistics, in canonical order
    duplicate_policy : DuplicatePolicy or str
        "first" keeps the value of the first channel holding a node, "last"
        the value of the last one, "mean" pools the samples of all of them

    Returns
    -------
    GlobalNodeTable
    """
    table = GlobalNodeTable(duplicate_policy)
    for profile, stats in channel_results:
        table.add_channel(profile, stats)

    logger.debug(
        f"Merged {table.n_channels} channels into {len(table)} nodes "
        f"({len(table.conflicts)} duplicates)"
    )
    return table
