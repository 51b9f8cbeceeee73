import numpy as np
import pytest

from chiseg.profile.channel import ChannelProfile


def build_profile(chi, elevation, node_ids=None, channel_id=None):
    chi = np.asarray(chi, dtype=float)
    if node_ids is None:
        node_ids = np.arange(len(chi))
    return ChannelProfile(
        node_ids=node_ids,
        chi=chi,
        elevation=elevation,
        drainage_area=np.full(len(chi), 1e6),
        channel_id=channel_id,
    )


@pytest.fixture
def linear_profile():
    """Factory for elevation = slope * chi + intercept (+ gaussian noise)"""

    def _make(n=60, slope=25.0, intercept=100.0, dchi=0.1, noise=0.0, seed=0):
        chi = np.arange(n) * dchi
        elevation = slope * chi + intercept
        if noise:
            rng = np.random.default_rng(seed)
            elevation = elevation + rng.normal(0, noise, n)
        return build_profile(chi, elevation)

    return _make


@pytest.fixture
def kinked_profile():
    """Factory for a continuous two piece profile with the kink at node `kink`"""

    def _make(n=60, kink=30, slopes=(10.0, 40.0), intercept=50.0, dchi=0.1):
        chi = np.arange(n) * dchi
        chi_kink = chi[kink]
        elevation = np.where(
            chi <= chi_kink,
            intercept + slopes[0] * chi,
            intercept + slopes[0] * chi_kink + slopes[1] * (chi - chi_kink),
        )
        return build_profile(chi, elevation)

    return _make
