from dataclasses import dataclass
from typing import Hashable, Optional

import numpy as np
import pandas as pd
from scipy.integrate import cumulative_trapezoid

from chiseg.errors import InvalidProfileError


def calculate_chi(
    flow_distance: np.ndarray,
    drainage_area: np.ndarray,
    A_0: float = 1.0,
    m_over_n: float = 0.5,
) -> np.ndarray:
    """
    Integrate the chi coordinate along a single channel.

    chi(x) = integral from the outlet to x of (A_0 / A(x')) ** (m/n) dx'

    Parameters
    ----------
    flow_distance : np.ndarray
        Distance along the flow path measured from the outlet, in meters
    drainage_area : np.ndarray
        Upstream drainage area of each node, in square meters
    A_0 : float
        Reference drainage area
    m_over_n : float
        Concavity index

    Returns
    -------
    np.ndarray
        chi for each node, in the same order as the inputs. The node with the
        smallest flow distance has chi = 0
    """
    flow_distance = np.asarray(flow_distance, dtype=float)
    drainage_area = np.asarray(drainage_area, dtype=float)
    if flow_distance.shape != drainage_area.shape:
        raise ValueError("flow_distance and drainage_area must have equal shapes")
    if np.any(drainage_area <= 0):
        raise ValueError("drainage_area must be positive")

    order = np.argsort(flow_distance, kind="stable")
    integrand = (A_0 / drainage_area[order]) ** m_over_n
    chi_sorted = cumulative_trapezoid(integrand, flow_distance[order], initial=0)

    chi = np.empty_like(chi_sorted)
    chi[order] = chi_sorted
    return chi


def _frozen(values, dtype) -> np.ndarray:
    arr = np.array(values, dtype=dtype)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class ChannelProfile:
    """
    Ordered nodes of one channel from its source to its outlet.

    Parameters
    ----------
    node_ids : array of int
        Flow network node index of every sample
    chi : array of float
        Chi coordinate of every sample, monotonic along the channel
    elevation : array of float
        Elevation of every sample
    drainage_area : array of float
        Drainage area of every sample
    flow_distance : array of float, optional
        Distance from the outlet along the flow path
    channel_id : hashable, optional
        Label of the channel, e.g. its source node
    """

    node_ids: np.ndarray
    chi: np.ndarray
    elevation: np.ndarray
    drainage_area: np.ndarray
    flow_distance: Optional[np.ndarray] = None
    channel_id: Optional[Hashable] = None

    def __post_init__(self):
        object.__setattr__(self, "node_ids", _frozen(self.node_ids, np.int64))
        for name in ["chi", "elevation", "drainage_area"]:
            object.__setattr__(self, name, _frozen(getattr(self, name), float))
        if self.flow_distance is not None:
            object.__setattr__(
                self, "flow_distance", _frozen(self.flow_distance, float)
            )
        self._validate()

    def _validate(self):
        n = len(self.node_ids)
        arrays = {
            "chi": self.chi,
            "elevation": self.elevation,
            "drainage_area": self.drainage_area,
        }
        if self.flow_distance is not None:
            arrays["flow_distance"] = self.flow_distance

        for name, arr in arrays.items():
            if arr.ndim != 1 or len(arr) != n:
                raise InvalidProfileError(
                    f"{name} has {arr.size} values, expected {n} (one per node)"
                )
            if not np.all(np.isfinite(arr)):
                raise InvalidProfileError(f"{name} contains non-finite values")

        if len(np.unique(self.node_ids)) != n:
            raise InvalidProfileError("node_ids must be unique within a channel")

        dchi = np.diff(self.chi)
        if not (np.all(dchi >= 0) or np.all(dchi <= 0)):
            raise InvalidProfileError("chi must be monotonic along the channel")

    def __len__(self):
        return len(self.node_ids)

    @property
    def source_node(self) -> int:
        return int(self.node_ids[0])

    @property
    def outlet_node(self) -> int:
        return int(self.node_ids[-1])

    def take(self, indices) -> "ChannelProfile":
        """Returns a profile holding only the nodes at the given positions"""
        indices = np.asarray(indices, dtype=np.int64)
        if np.any(np.diff(indices) <= 0):
            raise ValueError("indices must be strictly increasing")
        return ChannelProfile(
            node_ids=self.node_ids[indices],
            chi=self.chi[indices],
            elevation=self.elevation[indices],
            drainage_area=self.drainage_area[indices],
            flow_distance=(
                None if self.flow_distance is None else self.flow_distance[indices]
            ),
            channel_id=self.channel_id,
        )

    def to_dataframe(self) -> pd.DataFrame:
        df = pd.DataFrame(
            {
                "node": self.node_ids,
                "chi": self.chi,
                "elevation": self.elevation,
                "drainage_area": self.drainage_area,
            }
        )
        if self.flow_distance is not None:
            df["flow_distance"] = self.flow_distance
        return df

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, channel_id=None) -> "ChannelProfile":
        """
        Build a profile from a dataframe ordered from source to outlet with
        columns node, chi, elevation, drainage_area and optionally
        flow_distance
        """
        req = ["node", "chi", "elevation", "drainage_area"]
        missing = [col for col in req if col not in df.columns]
        if missing:
            raise ValueError(f"Missing required columns: {', '.join(missing)}")

        flow_distance = None
        if "flow_distance" in df.columns:
            flow_distance = df["flow_distance"].to_numpy()
        return cls(
            node_ids=df["node"].to_numpy(),
            chi=df["chi"].to_numpy(),
            elevation=df["elevation"].to_numpy(),
            drainage_area=df["drainage_area"].to_numpy(),
            flow_distance=flow_distance,
            channel_id=channel_id,
        )

    @classmethod
    def from_flow_arrays(
        cls,
        node_ids,
        elevation,
        drainage_area,
        flow_distance,
        A_0=1.0,
        m_over_n=0.5,
        channel_id=None,
    ) -> "ChannelProfile":
        """Build a profile computing chi from flow distance and drainage area"""
        chi = calculate_chi(flow_distance, drainage_area, A_0, m_over_n)
        return cls(
            node_ids=node_ids,
            chi=chi,
            elevation=elevation,
            drainage_area=drainage_area,
            flow_distance=flow_distance,
            channel_id=channel_id,
        )
