import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import torch

from .track import Track, TrackSet


class CopyOnWriteTracks:
    """Hands out private copies of tracks taken from a published TrackSet.

    Each track is cloned at most once, so repeated edits of the same track
    within one update accumulate on the same copy."""

    def __init__(self):
        self.copies: Dict[int, Track] = {}

    def __call__(self, track: Track) -> Track:
        copy = self.copies.get(track.id)
        if copy is None:
            copy = track.clone()
            self.copies[track.id] = copy
        return copy

    def resolve(self, track: Track) -> Track:
        """Get the private copy of a track if one was made, else the track."""
        return self.copies.get(track.id, track)


class BaseTracker(ABC):
    """Base class for feature trackers.

    A tracker consumes the previous TrackSet snapshot and one frame, and
    produces a new snapshot. It never modifies the snapshot it was given."""

    def __init__(self, config: Dict = None):
        """
        Initialize tracker.

        Args:
            config: Configuration dictionary
        """
        self.config = config if config is not None else {}

        # Initialize logger
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def extend(
        self,
        prev_tracks: Optional[TrackSet],
        frame_number: int,
        image: torch.Tensor,
        mask: Optional[torch.Tensor] = None,
    ) -> TrackSet:
        """
        Extend a set of tracks using the current frame.

        Args:
            prev_tracks: Tracks from previous frames (None on the first frame)
            frame_number: Number of the current frame
            image: Current image tensor (C, H, W) or (H, W)
            mask: Optional mask selecting the image region to use

        Returns:
            New track set
        """
        pass
