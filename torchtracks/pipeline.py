"""
Drivers running a tracker over a whole sequence of frames.
"""
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import numpy as np
import torch
from tqdm import tqdm

from .frontend.tracking.base import BaseTracker
from .frontend.tracking.track import TrackSet

logger = logging.getLogger(__name__)


def _unpack_frame(sample: Any) -> Tuple[int, torch.Tensor, Optional[torch.Tensor]]:
    """Split a dataset sample or (frame_number, image[, mask]) tuple."""
    if isinstance(sample, dict):
        return sample["frame_number"], sample["image"], sample.get("mask")
    if len(sample) == 2:
        frame_number, image = sample
        return frame_number, image, None
    frame_number, image, mask = sample
    return frame_number, image, mask


def track_sequence(
    tracker: BaseTracker,
    frames: Iterable,
    track_set: Optional[TrackSet] = None,
    show_progress: bool = True,
    callback: Optional[Callable[[int, TrackSet], None]] = None,
) -> TrackSet:
    """
    Run a tracker over a sequence of frames.

    Args:
        tracker: Tracker used to extend the tracks
        frames: Iterable of dataset samples (dicts with "frame_number",
            "image" and optionally "mask") or (frame_number, image[, mask])
            tuples
        track_set: Tracks to continue from (optional)
        show_progress: Whether to show a progress bar
        callback: Called with (frame_number, track_set) after each frame

    Returns:
        Final track set
    """
    progress = tqdm(frames, desc="Tracking", unit="frame", disable=not show_progress)

    for sample in progress:
        frame_number, image, mask = _unpack_frame(sample)
        track_set = tracker.extend(track_set, frame_number, image, mask)

        progress.set_postfix(
            tracks=track_set.size(),
            active=track_set.active_tracks(frame_number).size(),
        )
        if callback is not None:
            callback(frame_number, track_set)

    if track_set is None:
        logger.warning("No frames were tracked")
        return TrackSet()

    summary = summarize_tracks(track_set)
    logger.info(
        f"Tracked {summary['num_frames']} frames: {summary['num_tracks']} tracks, "
        f"mean length {summary['mean_length']:.2f}"
    )
    return track_set


def summarize_tracks(track_set: TrackSet) -> Dict[str, Any]:
    """
    Compute summary statistics of a track set.

    Args:
        track_set: Track set to summarize

    Returns:
        Dictionary with the number of tracks and frames, the first and last
        frame, and the mean, median and maximum track length
    """
    lengths = np.array([track.size() for track in track_set], dtype=np.int64)

    if lengths.size == 0:
        return {
            "num_tracks": 0,
            "num_frames": 0,
            "first_frame": None,
            "last_frame": None,
            "mean_length": 0.0,
            "median_length": 0.0,
            "max_length": 0,
        }

    return {
        "num_tracks": int(lengths.size),
        "num_frames": len(track_set.all_frame_ids()),
        "first_frame": track_set.first_frame(),
        "last_frame": track_set.last_frame(),
        "mean_length": float(lengths.mean()),
        "median_length": float(np.median(lengths)),
        "max_length": int(lengths.max()),
    }
