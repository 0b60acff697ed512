"""
Core feature tracker.

Extends feature tracks one frame at a time by detecting features, matching
them against a reference frame of the previous tracks and either extending
the matched tracks or stitching tracks that already exist on the frame.
"""
from typing import Dict, List, Optional

import torch

from ...algorithms import (
    DESCRIPTOR_EXTRACTOR,
    FEATURE_DETECTOR,
    FEATURE_MATCHER,
    LOOP_CLOSER,
    check_nested_algorithm_configuration,
    create_nested_algorithm,
    get_nested_algorithm_configuration,
)
from ...exceptions import ConfigurationError, DimensionMismatchError
from ..feature_extraction.base import (
    BaseDescriptorExtractor,
    BaseFeatureDetector,
    KeyPoint,
    image_size,
    is_empty_mask,
)
from ..feature_extraction.feature_matcher import BaseFeatureMatcher
from .base import BaseTracker, CopyOnWriteTracks
from .loop_closure import BaseLoopCloser
from .merge import merge_tracks, remove_replaced_tracks
from .track import Track, TrackSet, TrackState

MANDATORY_ALGORITHMS = (FEATURE_DETECTOR, DESCRIPTOR_EXTRACTOR, FEATURE_MATCHER)


class CoreFeatureTracker(BaseTracker):
    """Frame-to-frame feature tracker built from pluggable sub-algorithms.

    The detector, descriptor extractor and matcher are mandatory; the loop
    closer is optional. Sub-algorithms are given directly or built from a
    nested configuration dictionary (see ``torchtracks.algorithms``)."""

    def __init__(
        self,
        config: Dict = None,
        detector: Optional[BaseFeatureDetector] = None,
        extractor: Optional[BaseDescriptorExtractor] = None,
        matcher: Optional[BaseFeatureMatcher] = None,
        loop_closer: Optional[BaseLoopCloser] = None,
    ):
        """
        Initialize the tracker.

        Args:
            config: Nested configuration with "feature_detector",
                "descriptor_extractor", "feature_matcher" and "loop_closer" blocks
            detector: Feature detector (overrides the configuration)
            extractor: Descriptor extractor (overrides the configuration)
            matcher: Feature matcher (overrides the configuration)
            loop_closer: Loop closer (overrides the configuration)
        """
        super().__init__(config)
        self.detector = None
        self.extractor = None
        self.matcher = None
        self.loop_closer = None

        if self.config:
            self.set_configuration(self.config)

        if detector is not None:
            self.detector = detector
        if extractor is not None:
            self.extractor = extractor
        if matcher is not None:
            self.matcher = matcher
        if loop_closer is not None:
            self.loop_closer = loop_closer

    def get_configuration(self) -> Dict:
        """Describe the current sub-algorithms as a nested configuration."""
        return {
            FEATURE_DETECTOR: get_nested_algorithm_configuration(self.detector),
            DESCRIPTOR_EXTRACTOR: get_nested_algorithm_configuration(self.extractor),
            FEATURE_MATCHER: get_nested_algorithm_configuration(self.matcher),
            LOOP_CLOSER: get_nested_algorithm_configuration(self.loop_closer),
        }

    def set_configuration(self, config: Dict):
        """
        Build sub-algorithms from a nested configuration.

        Only the blocks present in ``config`` are rebuilt.

        Args:
            config: Nested configuration dictionary
        """
        if FEATURE_DETECTOR in config:
            self.detector = create_nested_algorithm(FEATURE_DETECTOR, config)
        if DESCRIPTOR_EXTRACTOR in config:
            self.extractor = create_nested_algorithm(DESCRIPTOR_EXTRACTOR, config)
        if FEATURE_MATCHER in config:
            self.matcher = create_nested_algorithm(FEATURE_MATCHER, config)
        if LOOP_CLOSER in config:
            self.loop_closer = create_nested_algorithm(LOOP_CLOSER, config)

    @classmethod
    def check_configuration(cls, config: Dict) -> bool:
        """
        Check a nested configuration.

        Args:
            config: Nested configuration dictionary

        Returns:
            False if a mandatory sub-algorithm is missing or invalid, or if a
            loop closer is selected with an invalid configuration
        """
        valid = all(
            check_nested_algorithm_configuration(name, config)
            for name in MANDATORY_ALGORITHMS
        )

        closer_block = config.get(LOOP_CLOSER) or {}
        if isinstance(closer_block, dict) and not closer_block.get("type"):
            return valid
        return valid and check_nested_algorithm_configuration(LOOP_CLOSER, config)

    def extend(
        self,
        prev_tracks: Optional[TrackSet],
        frame_number: int,
        image: torch.Tensor,
        mask: Optional[torch.Tensor] = None,
    ) -> TrackSet:
        """
        Extend a previous set of tracks using the current frame.

        Args:
            prev_tracks: Tracks from previous frames (None on the first frame)
            frame_number: Number of the current frame
            image: Current image tensor (C, H, W) or (H, W)
            mask: Optional mask; when non-empty it must match the image size

        Returns:
            New track set. On a matching failure ``prev_tracks`` is returned
            unchanged.
        """
        if self.detector is None or self.extractor is None or self.matcher is None:
            raise ConfigurationError(
                self.__class__.__name__, "not all sub-algorithms have been initialized"
            )

        if not is_empty_mask(mask) and image_size(image) != image_size(mask):
            image_width, image_height = image_size(image)
            mask_width, mask_height = image_size(mask)
            raise DimensionMismatchError(
                "Core feature tracker given a non-empty mask that is not the "
                "same shape as the provided image",
                image_width,
                image_height,
                mask_width,
                mask_height,
            )

        existing_set = None
        curr_feat: List[KeyPoint] = []
        curr_desc: Optional[torch.Tensor] = None

        # See if there are already tracks on this frame
        if prev_tracks is not None:
            existing_set = prev_tracks.active_tracks(frame_number)
            if not existing_set.empty():
                self.logger.debug(f"Using existing features on frame {frame_number}")
                curr_feat = existing_set.frame_features(frame_number)
                curr_desc = existing_set.frame_descriptors(frame_number)
        if not curr_feat:
            self.logger.debug(f"Computing new features on frame {frame_number}")
            curr_feat = self.detector.detect(image, mask)
        if curr_desc is None or curr_desc.shape[0] == 0:
            self.logger.debug(f"Computing new descriptors on frame {frame_number}")
            curr_desc = self.extractor.extract(image, curr_feat, mask)

        if prev_tracks is None or prev_tracks.empty():
            return self._initialize_tracks(frame_number, curr_feat, curr_desc, image, mask)

        next_track_id = prev_tracks.next_track_id()

        prev_frame = prev_tracks.last_frame()
        if prev_frame is None:
            # Tracks without states give no reference frame to match against
            self.logger.debug(f"No states to match frame {frame_number} against")
            new_tracks = self._new_tracks(frame_number, curr_feat, curr_desc, next_track_id)
            updated_set = TrackSet(prev_tracks.tracks() + new_tracks)
            return self._close_loops(frame_number, updated_set, image, mask)

        # If processing out of order, prefer tracks on the previous frame
        # over the last frame
        active_set = None
        if prev_frame >= frame_number and frame_number > 0:
            active_set = prev_tracks.active_tracks(frame_number - 1)
            if active_set.empty():
                active_set = None
            else:
                prev_frame = frame_number - 1
        if active_set is None:
            active_set = prev_tracks.active_tracks(prev_frame)

        if prev_frame == frame_number:
            self.logger.debug(f"No earlier frame to stitch frame {frame_number} to")
            return self._close_loops(frame_number, prev_tracks, image, mask)

        prev_feat = active_set.frame_features(prev_frame)
        prev_desc = active_set.frame_descriptors(prev_frame)

        matches = self.matcher.match(prev_feat, prev_desc, curr_feat, curr_desc)
        if matches is None:
            self.logger.warning(
                f"Feature matching between frames {prev_frame} and {frame_number} failed"
            )
            return prev_tracks

        active_tracks = active_set.tracks()
        writable = CopyOnWriteTracks()

        if existing_set is not None and not existing_set.empty():
            # Tracks already exist on this frame, stitch them to the reference frame
            existing_tracks = existing_set.tracks()
            track_pairs = [
                (writable(existing_tracks[m.train_idx]), writable(active_tracks[m.query_idx]))
                for m in matches
            ]
            num_linked, replacements = merge_tracks(track_pairs)
            self.logger.debug(
                f"Stitched {num_linked} existing tracks from frame {frame_number} to {prev_frame}"
            )
            updated_set = remove_replaced_tracks(prev_tracks, replacements)
        else:
            matched = set()
            for m in matches:
                track = writable(active_tracks[m.query_idx])
                state = TrackState(frame_number, curr_feat[m.train_idx], curr_desc[m.train_idx])
                if track.append(state) or track.insert(state):
                    matched.add(m.train_idx)

            all_tracks = [writable.resolve(t) for t in prev_tracks.tracks()]
            num_observations = min(len(curr_feat), curr_desc.shape[0])
            for i in range(num_observations):
                if i in matched:
                    continue
                state = TrackState(frame_number, curr_feat[i], curr_desc[i])
                all_tracks.append(Track(next_track_id, [state]))
                next_track_id += 1

            self.logger.debug(
                f"Frame {frame_number}: extended {len(matched)} tracks from frame "
                f"{prev_frame}, started {num_observations - len(matched)} new tracks"
            )
            updated_set = TrackSet(all_tracks)

        return self._close_loops(frame_number, updated_set, image, mask)

    def _initialize_tracks(
        self,
        frame_number: int,
        features: List[KeyPoint],
        descriptors: torch.Tensor,
        image: torch.Tensor,
        mask: Optional[torch.Tensor],
    ) -> TrackSet:
        """Start one track per feature on the first frame."""
        new_tracks = self._new_tracks(frame_number, features, descriptors, 0)
        self.logger.debug(f"Started {len(new_tracks)} tracks on first frame {frame_number}")

        # Loop closure is run on the first frame to register it as the
        # first frame for loop closing purposes
        return self._close_loops(frame_number, TrackSet(new_tracks), image, mask)

    def _new_tracks(
        self,
        frame_number: int,
        features: List[KeyPoint],
        descriptors: torch.Tensor,
        first_id: int,
    ) -> List[Track]:
        """Start one track per feature, numbered from ``first_id``."""
        return [
            Track(track_id, [TrackState(frame_number, feature, descriptor)])
            for track_id, (feature, descriptor) in enumerate(zip(features, descriptors), first_id)
        ]

    def _close_loops(
        self,
        frame_number: int,
        track_set: TrackSet,
        image: torch.Tensor,
        mask: Optional[torch.Tensor],
    ) -> TrackSet:
        if self.loop_closer is None:
            return track_set
        return self.loop_closer.stitch(frame_number, track_set, image, mask)
