import unittest
from unittest.mock import MagicMock

import torch

from torchtracks.exceptions import ConfigurationError
from torchtracks.frontend.feature_extraction import BaseFeatureMatcher, FeatureMatcher, KeyPoint, Match
from torchtracks.frontend.tracking import ExhaustiveLoopCloser, Track, TrackSet, TrackState


def make_state(frame, x, y):
    return TrackState(frame, KeyPoint(float(x), float(y)), torch.tensor([float(x), float(y)]))


class TestExhaustiveLoopCloser(unittest.TestCase):
    def setUp(self):
        self.image = torch.zeros((1, 16, 16))
        # Track 0 seen on frames 0-1, track 1 on frame 0 only, track 2 starts on frame 3
        self.track_set = TrackSet(
            [
                Track(0, [make_state(0, 1, 1), make_state(1, 1, 1)]),
                Track(1, [make_state(0, 5, 5)]),
                Track(2, [make_state(3, 5, 5)]),
            ]
        )
        self.matcher = MagicMock(spec=BaseFeatureMatcher)

    def test_default_configuration(self):
        closer = ExhaustiveLoopCloser()
        self.assertEqual(closer.match_req, 100)
        self.assertEqual(closer.num_look_back, -1)
        self.assertIsNone(closer.matcher)

    def test_nested_matcher_from_configuration(self):
        closer = ExhaustiveLoopCloser(
            {"match_req": 5, "feature_matcher": {"type": "brute_force"}}
        )
        self.assertIsInstance(closer.matcher, FeatureMatcher)

        config = closer.get_configuration()
        self.assertEqual(config["match_req"], 5)
        self.assertEqual(config["feature_matcher"]["type"], "brute_force")

    def test_check_configuration(self):
        valid = {"match_req": 3, "feature_matcher": {"type": "brute_force"}}
        self.assertTrue(ExhaustiveLoopCloser.check_configuration(valid))
        self.assertFalse(ExhaustiveLoopCloser.check_configuration(dict(valid, match_req=0)))
        self.assertFalse(ExhaustiveLoopCloser.check_configuration({"match_req": 3}))

    def test_stitch_without_matcher_raises(self):
        with self.assertRaises(ConfigurationError):
            ExhaustiveLoopCloser().stitch(3, self.track_set, self.image)

    def test_search_frames_skip_adjacent_frame(self):
        closer = ExhaustiveLoopCloser(matcher=self.matcher)
        track_set = TrackSet([Track(0, [make_state(f, 0, 0) for f in range(6)])])

        self.assertEqual(closer._search_frames(track_set, 5), [3, 2, 1, 0])

        closer.num_look_back = 2
        self.assertEqual(closer._search_frames(track_set, 5), [3, 2])

    def test_links_current_track_to_earlier_track(self):
        # Nothing matches on frame 1, track 1 matches on frame 0
        self.matcher.match.side_effect = [[], [Match(1, 0)]]
        closer = ExhaustiveLoopCloser({"match_req": 1}, matcher=self.matcher)

        result = closer.stitch(3, self.track_set, self.image)

        self.assertEqual(result.all_track_ids(), [0, 1])
        self.assertEqual(result.get_track(1).frames(), [0, 3])
        # Input snapshot is unchanged
        self.assertEqual(self.track_set.get_track(1).frames(), [0])
        self.assertEqual(self.track_set.all_track_ids(), [0, 1, 2])

        # Frames 1 and 0 are searched, most recent first
        searched = [c[0][1].shape[0] for c in self.matcher.match.call_args_list]
        self.assertEqual(searched, [1, 2])

    def test_too_few_matches_leave_tracks_unchanged(self):
        self.matcher.match.return_value = [Match(1, 0)]
        closer = ExhaustiveLoopCloser({"match_req": 2}, matcher=self.matcher)

        result = closer.stitch(3, self.track_set, self.image)

        self.assertIs(result, self.track_set)

    def test_matcher_failure_is_skipped(self):
        self.matcher.match.return_value = None
        closer = ExhaustiveLoopCloser({"match_req": 1}, matcher=self.matcher)

        with self.assertLogs("ExhaustiveLoopCloser", level="WARNING"):
            result = closer.stitch(3, self.track_set, self.image)

        self.assertIs(result, self.track_set)

    def test_no_tracks_on_current_frame(self):
        closer = ExhaustiveLoopCloser({"match_req": 1}, matcher=self.matcher)

        result = closer.stitch(7, self.track_set, self.image)

        self.assertIs(result, self.track_set)
        self.matcher.match.assert_not_called()


if __name__ == "__main__":
    unittest.main()
