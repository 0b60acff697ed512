"""
Visualization of feature tracks.
"""
from typing import Optional, Tuple, Union

import cv2
import matplotlib.pyplot as plt
import numpy as np
import torch

from .frontend.tracking.track import TrackSet


def _to_bgr_image(image: Union[torch.Tensor, np.ndarray]) -> np.ndarray:
    """Convert an image tensor (C, H, W) / (H, W) or array to a uint8 BGR array."""
    if isinstance(image, torch.Tensor):
        array = image.detach().cpu().numpy()
        if array.ndim == 3:
            array = np.transpose(array, (1, 2, 0))
            if array.shape[2] == 3:
                array = array[:, :, ::-1]
    else:
        array = np.array(image)

    if array.dtype != np.uint8:
        if array.size and array.max() <= 1.0:
            array = array * 255.0
        array = np.clip(array, 0, 255).astype(np.uint8)

    if array.ndim == 3 and array.shape[2] == 1:
        array = array[:, :, 0]
    if array.ndim == 2:
        array = cv2.cvtColor(array, cv2.COLOR_GRAY2BGR)
    return np.ascontiguousarray(array)


def _track_color(track_id: int) -> Tuple[int, int, int]:
    r, g, b, _ = plt.get_cmap("tab20")(track_id % 20)
    return int(b * 255), int(g * 255), int(r * 255)


def draw_tracks(
    image: Union[torch.Tensor, np.ndarray],
    track_set: TrackSet,
    frame_number: int,
    tail: int = 10,
) -> np.ndarray:
    """
    Draw the tracks observed on a frame.

    Each active track is drawn as a circle at its current feature with a
    polyline through its states on at most ``tail`` earlier frames.

    Args:
        image: Image of the frame
        track_set: Tracks to draw
        frame_number: Frame to draw
        tail: Maximum number of earlier states to connect

    Returns:
        BGR image with the tracks drawn
    """
    canvas = _to_bgr_image(image)

    for track in track_set.active_tracks(frame_number):
        color = _track_color(track.id)
        states = [s for s in track if s.frame <= frame_number][-(tail + 1):]
        points = np.array(
            [[round(s.feature.x), round(s.feature.y)] for s in states], dtype=np.int32
        )

        if len(points) > 1:
            cv2.polylines(canvas, [points.reshape(-1, 1, 2)], False, color, 1, cv2.LINE_AA)
        cv2.circle(canvas, tuple(int(v) for v in points[-1]), 3, color, -1, cv2.LINE_AA)

    return canvas


def plot_track_lengths(track_set: TrackSet, ax: Optional[plt.Axes] = None) -> plt.Axes:
    """
    Plot a histogram of track lengths.

    Args:
        track_set: Tracks to plot
        ax: Axes to draw on (a new figure is created if None)

    Returns:
        Axes holding the histogram
    """
    if ax is None:
        _, ax = plt.subplots(figsize=(8, 5))

    lengths = [track.size() for track in track_set]
    if lengths:
        bins = np.arange(1, max(lengths) + 2) - 0.5
        ax.hist(lengths, bins=bins, color="tab:blue", edgecolor="black")

    ax.set_xlabel("Track length (frames)")
    ax.set_ylabel("Number of tracks")
    ax.set_title(f"Track lengths ({len(lengths)} tracks)")
    ax.grid(True, alpha=0.3)
    return ax
