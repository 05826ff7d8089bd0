"""
plotting.py - Matplotlib view of a controller Snapshot.

A thin presentation collaborator: it only reads a `Snapshot` and the static
GridWorld layout, so the engine never imports matplotlib itself.
"""

from __future__ import annotations

from typing import Optional, Tuple

import matplotlib
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.patches import Rectangle

from .controller import Snapshot
from .gridworld import MOVES, GridWorld


def plot_values_and_policy(world: GridWorld, snapshot: Snapshot,
                           title: Optional[str] = None,
                           ax: Optional[plt.Axes] = None,
                           show: bool = True) -> Tuple[plt.Figure, plt.Axes]:
    """
    Visualize V(s) as a heatmap with greedy-policy arrows on top.

    Parameters
    ----------
    world : GridWorld
        Layout used for start / goal / obstacle markers.
    snapshot : Snapshot
        Values and policy to draw.
    title : str or None
        Figure title. Defaults to the algorithm and iteration count.
    ax : matplotlib Axes or None
        Draw into an existing axes instead of creating a figure.
    show : bool
        Call plt.show() when done.

    Returns
    -------
    (Figure, Axes)

    Notes
    -----
    - (0, 0) is drawn at the top-left, matching the (row, col) convention.
    - Obstacles are NaN in `snapshot.values` and render as masked cells.
    - No arrow is drawn on obstacles or on the goal.
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(6.6, 6.6))
    else:
        fig = ax.figure

    V = np.ma.masked_invalid(snapshot.values)
    cmap = matplotlib.colormaps["coolwarm"].with_extremes(bad="#b0b0b0")  # obstacles
    im = ax.imshow(V, origin="upper", cmap=cmap)
    fig.colorbar(im, ax=ax, label="V(s)")

    # arrows (quiver y-axis points down once the image is origin='upper')
    X, Y, U, W = [], [], [], []
    for s in world.states():
        if world.is_goal(s):
            continue
        dr, dc = MOVES[int(snapshot.policy[s.row, s.col])]
        X.append(s.col)
        Y.append(s.row)
        U.append(dc * 0.4)
        W.append(dr * 0.4)
    ax.quiver(X, Y, U, W, angles="xy", scale_units="xy", scale=1, width=0.006, pivot="middle")

    sr, sc = world.start
    ax.scatter(sc, sr, s=180, marker="D", facecolors="#4fc3f7", edgecolors="black",
               label="Start", zorder=5)
    gr, gc = world.goal
    ax.scatter(gc, gr, s=220, marker="*", facecolors="#66bb6a", edgecolors="black",
               label="Goal", zorder=6)

    sel = snapshot.run.selected_state
    if sel is not None:
        ax.add_patch(Rectangle((sel.col - 0.5, sel.row - 0.5), 1, 1,
                               fill=False, edgecolor="black", linewidth=2.5))

    ax.set_xticks(range(world.size))
    ax.set_yticks(range(world.size))
    ax.set_aspect("equal")
    if title is None:
        title = f"{snapshot.run.algorithm.value} - iteration {snapshot.run.iteration}"
    ax.set_title(title)
    ax.legend(loc="upper left", bbox_to_anchor=(1.25, 1), frameon=True)
    fig.tight_layout()

    if show:
        plt.show()
    return fig, ax
