import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import torch

from ...algorithms import (
    FEATURE_MATCHER,
    LOOP_CLOSER,
    check_nested_algorithm_configuration,
    create_nested_algorithm,
    get_nested_algorithm_configuration,
    register_algorithm,
)
from ...exceptions import ConfigurationError
from ..feature_extraction.feature_matcher import BaseFeatureMatcher
from .base import CopyOnWriteTracks
from .merge import ReplacementMap, merge_tracks, remove_replaced_tracks
from .track import TrackSet


class BaseLoopCloser(ABC):
    """Base class for loop closure.

    A loop closer links tracks on the current frame to tracks on frames that
    are not adjacent to it, merging tracks found to observe the same point."""

    def __init__(self, config: Dict = None):
        """
        Initialize loop closer.

        Args:
            config: Configuration dictionary
        """
        self.config = config if config is not None else {}

        # Initialize logger
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def check_configuration(cls, config: Dict) -> bool:
        """Whether a configuration dictionary is valid for this loop closer."""
        return True

    def get_configuration(self) -> Dict:
        """Get the configuration of this loop closer."""
        return dict(self.config)

    @abstractmethod
    def stitch(
        self,
        frame_number: int,
        track_set: TrackSet,
        image: torch.Tensor,
        mask: Optional[torch.Tensor] = None,
    ) -> TrackSet:
        """
        Link tracks on the current frame to tracks on earlier frames.

        Args:
            frame_number: Number of the current frame
            track_set: Tracks including those on the current frame
            image: Current image tensor
            mask: Optional mask of the current image

        Returns:
            New track set with linked tracks merged (``track_set`` itself when
            nothing was linked)
        """
        pass


@register_algorithm(LOOP_CLOSER, "exhaustive")
class ExhaustiveLoopCloser(BaseLoopCloser):
    """Loop closer that matches the current frame against every earlier frame.

    The frame immediately before the current one is skipped since it is
    matched by the tracker itself. When enough matches are found against an
    earlier frame, the earlier tracks absorb the matching current tracks."""

    def __init__(
        self, config: Dict = None, matcher: Optional[BaseFeatureMatcher] = None
    ):
        """
        Initialize exhaustive loop closer.

        Args:
            config: Configuration dictionary with the following keys:
                - match_req: Minimum number of matches required to link a frame
                - num_look_back: Maximum number of earlier frames to search
                  (non-positive to search all frames)
                - feature_matcher: Nested feature matcher configuration
            matcher: Feature matcher (overrides the configuration)
        """
        super().__init__(config)
        self.match_req = self.config.get("match_req", 100)
        self.num_look_back = self.config.get("num_look_back", -1)

        if matcher is not None:
            self.matcher = matcher
        else:
            self.matcher = create_nested_algorithm(FEATURE_MATCHER, self.config)

    @classmethod
    def check_configuration(cls, config: Dict) -> bool:
        if int(config.get("match_req", 100)) < 1:
            return False
        return check_nested_algorithm_configuration(FEATURE_MATCHER, config)

    def get_configuration(self) -> Dict:
        return {
            "match_req": self.match_req,
            "num_look_back": self.num_look_back,
            FEATURE_MATCHER: get_nested_algorithm_configuration(self.matcher),
        }

    def _search_frames(self, track_set: TrackSet, frame_number: int) -> List[int]:
        """Earlier frames to search, most recent first."""
        frames = [f for f in track_set.all_frame_ids() if f <= frame_number - 2]
        if self.num_look_back > 0:
            frames = frames[-self.num_look_back :]
        return frames[::-1]

    def stitch(
        self,
        frame_number: int,
        track_set: TrackSet,
        image: torch.Tensor,
        mask: Optional[torch.Tensor] = None,
    ) -> TrackSet:
        if self.matcher is None:
            raise ConfigurationError(
                self.__class__.__name__, "no feature matcher has been initialized"
            )

        current_set = track_set.active_tracks(frame_number)
        if current_set.empty():
            return track_set

        curr_feat = current_set.frame_features(frame_number)
        curr_desc = current_set.frame_descriptors(frame_number)
        current_tracks = current_set.tracks()

        writable = CopyOnWriteTracks()
        replacements: ReplacementMap = {}
        total_linked = 0

        for frame in self._search_frames(track_set, frame_number):
            frame_set = track_set.active_tracks(frame)
            matches = self.matcher.match(
                frame_set.frame_features(frame),
                frame_set.frame_descriptors(frame),
                curr_feat,
                curr_desc,
            )
            if matches is None:
                self.logger.warning(
                    f"Feature matching between frames {frame} and {frame_number} failed"
                )
                continue
            if len(matches) < self.match_req:
                continue

            frame_tracks = frame_set.tracks()
            track_pairs = [
                (writable(frame_tracks[m.query_idx]), writable(current_tracks[m.train_idx]))
                for m in matches
            ]
            num_linked, replacements = merge_tracks(track_pairs, replacements)
            total_linked += num_linked
            self.logger.debug(
                f"Linked {num_linked} tracks from frame {frame_number} to frame {frame}"
            )

        if not replacements:
            return track_set

        self.logger.info(
            f"Closed loops on frame {frame_number}: merged {total_linked} tracks"
        )
        return remove_replaced_tracks(track_set, replacements)
