"""Core workflow for segmenting the chi profiles of a channel network."""

import concurrent.futures
import os
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from loguru import logger
from tqdm import tqdm

from chiseg.config import ChiSegConfig
from chiseg.errors import ChiSegError
from chiseg.errors import InvalidProfileError
from chiseg.merge import GlobalNodeTable
from chiseg.merge import merge_channels
from chiseg.montecarlo import NodeStatistic
from chiseg.montecarlo import monte_carlo_segments
from chiseg.profile.channel import ChannelProfile


def format_time_duration(seconds):
    """
    Format seconds into a human-readable time string.
    For longer durations, shows hours and minutes; for shorter ones, shows minutes and seconds.
    """

    hours, remainder = divmod(int(seconds), 3600)
    minutes, whole_seconds = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {whole_seconds}s"
    elif minutes > 0:
        return f"{minutes}m {whole_seconds}s"
    else:
        return f"{seconds:.2f}s"


def load_channel(channel, config: ChiSegConfig, channel_id=None) -> ChannelProfile:
    """
    Profile of one channel as returned by get_channel.

    Parameters
    ----------
    channel : ChannelProfile or pd.DataFrame
        A profile, or a dataframe ordered from source to outlet with columns
        node, elevation, drainage_area and either chi or flow_distance. Without
        a chi column, chi is integrated with config.chi.A_0 and
        config.chi.m_over_n
    config : ChiSegConfig
        Configuration of the workflow
    channel_id : hashable, optional
        Label given to profiles built from a dataframe

    Returns
    -------
    ChannelProfile
    """
    if isinstance(channel, ChannelProfile):
        return channel
    if not isinstance(channel, pd.DataFrame):
        raise InvalidProfileError(
            f"Expected a ChannelProfile or a DataFrame, got {type(channel).__name__}"
        )
    if "chi" in channel.columns:
        return ChannelProfile.from_dataframe(channel, channel_id=channel_id)

    req = ["node", "elevation", "drainage_area", "flow_distance"]
    missing = [col for col in req if col not in channel.columns]
    if missing:
        raise InvalidProfileError(f"Missing required columns: {', '.join(missing)}")
    return ChannelProfile.from_flow_arrays(
        node_ids=channel["node"].to_numpy(),
        elevation=channel["elevation"].to_numpy(),
        drainage_area=channel["drainage_area"].to_numpy(),
        flow_distance=channel["flow_distance"].to_numpy(),
        A_0=config.chi.A_0,
        m_over_n=config.chi.m_over_n,
        channel_id=channel_id,
    )


def segment_channel(profile, config: ChiSegConfig, seed=None) -> Dict[int, NodeStatistic]:
    """Monte Carlo segmentation of one channel with the configured parameters"""
    return monte_carlo_segments(
        profile,
        n_iterations=config.monte_carlo.n_iterations,
        skip=config.monte_carlo.skip,
        minimum_segment_length=config.segment.minimum_segment_length,
        target_nodes=config.segment.target_nodes,
        sigma=config.segment.sigma,
        omit_fraction=config.monte_carlo.omit_fraction,
        seed=seed,
    )


def segment_channels(
    profiles: Sequence,
    config: ChiSegConfig,
    workers: Optional[int] = None,
) -> List[Optional[Dict[int, NodeStatistic]]]:
    """
    Segment many channels, sequentially or on a process pool.

    Every channel gets its own child of the configured seed, so results do
    not depend on the number of workers or the order tasks complete in.

    Returns
    -------
    list
        Node statistics per channel in the order of profiles, None where the
        channel failed
    """
    n_channels = len(profiles)
    seeds = np.random.SeedSequence(config.monte_carlo.seed).spawn(n_channels)
    results: List[Optional[Dict[int, NodeStatistic]]] = [None] * n_channels

    if workers is None:
        workers = config.workers if config.workers is not None else os.cpu_count()
    workers = max(1, min(workers or 1, max(n_channels, 1)))

    if workers == 1:
        for idx, profile in enumerate(tqdm(profiles, desc="Segmenting channels")):
            try:
                results[idx] = segment_channel(profile, config, seeds[idx])
            except (ChiSegError, ValueError) as e:
                logger.warning(f"Skipping channel {profile.channel_id}: {e}")
        return results

    executor = concurrent.futures.ProcessPoolExecutor(max_workers=workers)
    try:
        futures = {
            executor.submit(segment_channel, profile, config, seeds[idx]): idx
            for idx, profile in enumerate(profiles)
        }
        for future in tqdm(
            concurrent.futures.as_completed(futures),
            total=len(futures),
            desc="Segmenting channels",
        ):
            idx = futures[future]
            try:
                results[idx] = future.result()
            except (ChiSegError, ValueError) as e:
                logger.warning(f"Skipping channel {profiles[idx].channel_id}: {e}")
    except BaseException:
        # abandon channels still queued, nothing has been merged yet
        executor.shutdown(wait=False, cancel_futures=True)
        raise
    executor.shutdown(wait=True)
    return results


def extract_chi_segments(
    source_nodes: Sequence[int],
    outlet_nodes: Sequence[int],
    get_channel: Callable[[int, int], object],
    config: Optional[ChiSegConfig] = None,
    workers: Optional[int] = None,
) -> GlobalNodeTable:
    """
    Segment the chi profiles of every source/outlet channel and merge them
    into a single node table.

    Parameters
    ----------
    source_nodes : sequence of int
        Channel head node of each channel
    outlet_nodes : sequence of int
        Outlet node of each channel, paired with source_nodes
    get_channel : callable
        get_channel(source, outlet) -> ChannelProfile or pd.DataFrame,
        provided by the flow network. See load_channel for the dataframe
        columns
    config : ChiSegConfig, optional
        Configuration of the workflow. See help(ChiSegConfig) for details
    workers : int, optional
        Number of worker processes, overrides config.workers

    Returns
    -------
    GlobalNodeTable
        Merged node statistics, duplicate nodes resolved by
        config.merge.duplicate_policy in the order of source_nodes
    """
    if len(source_nodes) != len(outlet_nodes):
        raise ValueError("source_nodes and outlet_nodes must have equal lengths")
    if config is None:
        config = ChiSegConfig()

    start_time = time.time()
    logger.info("Starting chi segmentation workflow")
    logger.debug(f"Configuration: {config}")

    logger.info(f"Extracting {len(source_nodes)} channels")
    profiles = []
    for source, outlet in zip(source_nodes, outlet_nodes):
        try:
            profile = load_channel(get_channel(source, outlet), config, source)
        except (ChiSegError, ValueError) as e:
            logger.warning(f"Skipping channel {source} -> {outlet}: {e}")
            continue
        logger.debug(f"Channel {source} -> {outlet}: {len(profile)} nodes")
        profiles.append(profile)
    extract_duration = time.time() - start_time

    logger.info("Running Monte Carlo segmentation")
    segment_start_time = time.time()
    stats = segment_channels(profiles, config, workers)
    segment_duration = time.time() - segment_start_time

    logger.info("Merging channels")
    channel_results: List[Tuple[object, Dict[int, NodeStatistic]]] = [
        (profile, result)
        for profile, result in zip(profiles, stats)
        if result is not None
    ]
    table = merge_channels(channel_results, config.merge.duplicate_policy)

    total_duration = time.time() - start_time
    logger.info(f"Channel extraction time: {format_time_duration(extract_duration)}")
    logger.info(f"Segmentation time: {format_time_duration(segment_duration)}")
    logger.info(f"Total execution time: {format_time_duration(total_duration)}")
    logger.debug(f"Number of channels merged: {len(channel_results)}")
    logger.debug(f"Number of nodes: {len(table)}")

    logger.success("Chi segmentation workflow completed")
    return table
