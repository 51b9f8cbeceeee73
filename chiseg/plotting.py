import matplotlib.pyplot as plt
import numpy as np


def plot_partition(profile, partition, ax=None):
    """
    Scatter of elevation against chi with the segments of a partition
    shaded, breakpoints dashed and the fitted lines overlaid.
    """
    if ax is None:
        fig, ax = plt.subplots()
    else:
        fig = ax.figure

    chi = profile.chi
    ax.scatter(chi, profile.elevation, marker="o", s=10, color="black")

    colors = ["white", "lightblue"]
    for i, seg in enumerate(partition.segments):
        lo, hi = chi[seg.start], chi[seg.end - 1]
        ax.axvspan(min(lo, hi), max(lo, hi), facecolor=colors[i % 2], alpha=0.5)

        x = np.array([lo, hi])
        ax.plot(x, seg.intercept + seg.slope * x, color="red", linewidth=1.5)

    for seg in partition.segments[1:]:
        ax.axvline(x=chi[seg.start], linestyle="--", color="red", linewidth=1)

    ax.set_xlabel("chi (m)")
    ax.set_ylabel("elevation (m)")
    return fig, ax
