from unittest.mock import MagicMock

import pytest
import torch

from torchtracks.config import default_config
from torchtracks.exceptions import ConfigurationError, DimensionMismatchError
from torchtracks.frontend.feature_extraction import (
    BaseFeatureMatcher,
    BriefDescriptorExtractor,
    FeatureMatcher,
    HarrisFeatureDetector,
    Match,
)
from torchtracks.frontend.tracking import (
    BaseLoopCloser,
    CoreFeatureTracker,
    ExhaustiveLoopCloser,
    Track,
    TrackSet,
)

A = (10, 10)
B = (20, 20)
C = (30, 30)
D = (40, 40)


def track_frames(track_set):
    return {t.id: t.frames() for t in track_set}


# --- First frame ---


def test_first_frame_starts_one_track_per_feature(step):
    tracks = step(None, 1, [A, B, C])

    assert tracks.all_track_ids() == [0, 1, 2]
    assert track_frames(tracks) == {0: [1], 1: [1], 2: [1]}
    assert [f.pt() for f in tracks.frame_features(1)] == [A, B, C]


def test_first_frame_with_empty_previous_set(step):
    tracks = step(TrackSet(), 5, [A])
    assert track_frames(tracks) == {0: [5]}


def test_first_frame_without_features(step):
    tracks = step(None, 0, [])
    assert tracks.empty()


def test_tracks_without_states_give_no_reference_frame(step):
    tracks = step(TrackSet([Track(5)]), 1, [A, B])

    assert tracks.all_track_ids() == [5, 6, 7]
    assert track_frames(tracks) == {5: [], 6: [1], 7: [1]}


# --- Fresh frames ---


def test_matched_tracks_extended_and_unmatched_start_new_tracks(step):
    tracks = step(None, 1, [A, B])
    tracks = step(tracks, 2, [A, C])

    assert track_frames(tracks) == {0: [1, 2], 1: [1], 2: [2]}


def test_no_observation_lost(step):
    tracks = step(None, 0, [A, B])
    tracks = step(tracks, 1, [A, B, C, D])

    assert len(tracks.frame_states(1)) == 4
    assert tracks.all_track_ids() == [0, 1, 2, 3]


def test_new_ids_follow_max_id(step):
    tracks = step(None, 0, [A, B])
    tracks = step(tracks, 1, [C])
    tracks = step(tracks, 2, [D])

    assert tracks.all_track_ids() == [0, 1, 2, 3]
    assert track_frames(tracks)[3] == [2]


def test_previous_tracks_not_modified(step):
    first = step(None, 1, [A, B])
    second = step(first, 2, [A, B])

    assert track_frames(first) == {0: [1], 1: [1]}
    assert track_frames(second) == {0: [1, 2], 1: [1, 2]}
    assert first.get_track(0) is not second.get_track(0)


def test_untouched_tracks_shared_between_snapshots(step):
    first = step(None, 1, [A, B])
    second = step(first, 2, [A])

    assert second.get_track(1) is first.get_track(1)


def test_out_of_order_frame_uses_previous_frame(step):
    tracks = step(None, 0, [A, B])
    tracks = step(tracks, 1, [A, B])
    tracks = step(tracks, 4, [A, B])

    tracks = step(tracks, 2, [A, B])

    assert track_frames(tracks) == {0: [0, 1, 2, 4], 1: [0, 1, 2, 4]}


def test_out_of_order_frame_falls_back_to_last_frame(step):
    tracks = step(None, 0, [A])
    tracks = step(tracks, 5, [A])

    # Nothing on frame 2, so frame 3 is matched against frame 5
    tracks = step(tracks, 3, [A])

    assert track_frames(tracks) == {0: [0, 3, 5]}


# --- Re-entrant frames ---


class FixedMatcher(BaseFeatureMatcher):
    def __init__(self, matches):
        super().__init__()
        self.matches = matches

    def match(self, features_a, descriptors_a, features_b, descriptors_b):
        return list(self.matches)


def test_existing_tracks_on_frame_are_stitched(detector, extractor, image):
    tracker = CoreFeatureTracker(
        detector=detector, extractor=extractor, matcher=FixedMatcher([])
    )
    detector.points = [A, B]
    tracks = tracker.extend(None, 0, image)
    detector.points = [C, D]
    tracks = tracker.extend(tracks, 1, image)
    assert track_frames(tracks) == {0: [0], 1: [0], 2: [1], 3: [1]}

    detector.calls = 0
    tracker.matcher = FixedMatcher([Match(0, 0), Match(1, 1)])
    tracks = tracker.extend(tracks, 1, image)

    # Existing features were reused instead of detecting again
    assert detector.calls == 0
    assert track_frames(tracks) == {2: [0, 1], 3: [0, 1]}


def test_reprocessing_frame_without_matches_keeps_tracks(step):
    tracks = step(None, 0, [A, B])
    tracks = step(tracks, 1, [A, C])

    again = step(tracks, 1, [])

    assert track_frames(again) == track_frames(tracks)


def test_reprocessing_only_frame_is_noop(step):
    tracks = step(None, 3, [A, B])
    again = step(tracks, 3, [A, B])

    assert track_frames(again) == {0: [3], 1: [3]}


# --- Errors ---


def test_missing_sub_algorithms_raise(image):
    tracker = CoreFeatureTracker()
    with pytest.raises(ConfigurationError):
        tracker.extend(None, 0, image)


def test_mask_size_mismatch_raises(tracker, detector, image):
    detector.points = [A]
    with pytest.raises(DimensionMismatchError) as excinfo:
        tracker.extend(None, 0, image, torch.ones((16, 16)))

    assert (excinfo.value.image_width, excinfo.value.image_height) == (32, 32)
    assert (excinfo.value.mask_width, excinfo.value.mask_height) == (16, 16)
    assert detector.calls == 0


def test_empty_mask_is_ignored(tracker, detector, image):
    detector.points = [A]
    tracks = tracker.extend(None, 0, image, torch.empty(0))
    assert tracks.size() == 1


def test_matcher_failure_returns_previous_tracks(detector, extractor, image):
    failing = MagicMock(spec=BaseFeatureMatcher)
    failing.match.return_value = None
    tracker = CoreFeatureTracker(detector=detector, extractor=extractor, matcher=failing)

    detector.points = [A, B]
    first = tracker.extend(None, 0, image)
    detector.points = [A, C]
    second = tracker.extend(first, 1, image)

    assert second is first
    assert track_frames(second) == {0: [0], 1: [0]}


# --- Loop closing ---


def test_loop_closer_receives_every_result(tracker, detector, image):
    closed = TrackSet()
    closer = MagicMock(spec=BaseLoopCloser)
    closer.stitch.return_value = closed
    tracker.loop_closer = closer

    detector.points = [A]
    result = tracker.extend(None, 0, image)

    assert result is closed
    closer.stitch.assert_called_once()
    frame_number, track_set, _, _ = closer.stitch.call_args[0]
    assert frame_number == 0
    assert track_set.all_track_ids() == [0]


def test_end_to_end_with_loop_closing(detector, extractor, matcher, image):
    closer = ExhaustiveLoopCloser({"match_req": 1}, matcher=matcher)
    tracker = CoreFeatureTracker(
        detector=detector, extractor=extractor, matcher=matcher, loop_closer=closer
    )

    detector.points = [A, B]
    tracks = tracker.extend(None, 1, image)
    assert track_frames(tracks) == {0: [1], 1: [1]}

    detector.points = [A, C]
    tracks = tracker.extend(tracks, 2, image)
    assert track_frames(tracks) == {0: [1, 2], 1: [1], 2: [2]}

    detector.points = [B]
    tracks = tracker.extend(tracks, 3, image)
    assert track_frames(tracks) == {0: [1, 2], 1: [1, 3], 2: [2]}


# --- Configuration ---


def test_configuration_builds_sub_algorithms():
    tracker = CoreFeatureTracker(config=default_config())

    assert isinstance(tracker.detector, HarrisFeatureDetector)
    assert isinstance(tracker.extractor, BriefDescriptorExtractor)
    assert isinstance(tracker.matcher, FeatureMatcher)
    assert tracker.loop_closer is None


def test_get_configuration_round_trip():
    tracker = CoreFeatureTracker(config=default_config())
    config = tracker.get_configuration()

    assert config["feature_detector"]["type"] == "harris"
    assert config["loop_closer"] == {"type": ""}
    assert CoreFeatureTracker.check_configuration(config)

    rebuilt = CoreFeatureTracker(config=config)
    assert rebuilt.matcher.method == tracker.matcher.method


def test_set_configuration_replaces_only_given_blocks():
    tracker = CoreFeatureTracker(config=default_config())
    detector = tracker.detector

    tracker.set_configuration({"descriptor_extractor": {"type": "patch"}})

    assert tracker.detector is detector
    assert tracker.extractor.algorithm_name == "patch"


def test_check_configuration():
    config = default_config()
    assert CoreFeatureTracker.check_configuration(config)

    missing = default_config()
    del missing["feature_matcher"]
    assert not CoreFeatureTracker.check_configuration(missing)

    unknown = default_config()
    unknown["feature_detector"]["type"] = "does_not_exist"
    assert not CoreFeatureTracker.check_configuration(unknown)

    closer = default_config()
    closer["loop_closer"] = {"type": "exhaustive", "exhaustive": {}}
    assert not CoreFeatureTracker.check_configuration(closer)

    closer["loop_closer"]["exhaustive"] = {
        "match_req": 10,
        "feature_matcher": {"type": "brute_force"},
    }
    assert CoreFeatureTracker.check_configuration(closer)


def test_tracks_noise_image_with_default_configuration():
    generator = torch.Generator().manual_seed(0)
    image = torch.rand((1, 64, 64), generator=generator)
    tracker = CoreFeatureTracker(config=default_config())

    tracks = None
    for frame in range(3):
        tracks = tracker.extend(tracks, frame, image)

    first = tracks.active_tracks(0)
    assert not first.empty()
    continued = [t for t in first if t.frames() == [0, 1, 2]]
    assert len(continued) >= 0.9 * first.size()
    assert len(set(tracks.all_track_ids())) == tracks.size()
