import unittest

import torch

from torchtracks.frontend.feature_extraction import FeatureMatcher, KeyPoint, Match, MatchingMethod


def make_features(n):
    return [KeyPoint(float(i), float(i)) for i in range(n)]


class TestFeatureMatcher(unittest.TestCase):
    def setUp(self):
        self.perm = [2, 0, 3, 1]
        self.desc_a = torch.eye(4)
        self.desc_b = self.desc_a[self.perm]
        self.feat_a = make_features(4)
        self.feat_b = make_features(4)

    def expected(self):
        return {(i, self.perm.index(i)) for i in range(4)}

    def test_default_configuration(self):
        matcher = FeatureMatcher()
        self.assertEqual(matcher.method, MatchingMethod.RATIO_TEST)
        self.assertEqual(matcher.get_configuration()["method"], "ratio_test")

    def test_float_descriptors_all_methods(self):
        for method in MatchingMethod:
            with self.subTest(method=method):
                matcher = FeatureMatcher({"method": method.value})
                matches = matcher.match(self.feat_a, self.desc_a, self.feat_b, self.desc_b)
                self.assertEqual({tuple(m) for m in matches}, self.expected())

    def test_binary_descriptors(self):
        generator = torch.Generator().manual_seed(3)
        desc_a = torch.randint(0, 256, (4, 32), dtype=torch.uint8, generator=generator)
        desc_b = desc_a[self.perm]

        matcher = FeatureMatcher({"method": "ratio_test", "cross_check": True})
        matches = matcher.match(self.feat_a, desc_a, self.feat_b, desc_b)

        self.assertEqual({tuple(m) for m in matches}, self.expected())
        self.assertTrue(all(m.distance == 0 for m in matches))

    def test_hamming_distance(self):
        desc_a = torch.tensor([[0b00000000, 0b11111111]], dtype=torch.uint8)
        desc_b = torch.tensor([[0b00000111, 0b11111111]], dtype=torch.uint8)
        distances = FeatureMatcher().compute_distances(desc_a, desc_b)
        self.assertEqual(distances[0, 0].item(), 3)

    def test_ratio_test_rejects_ambiguous_matches(self):
        desc_b = torch.stack([self.desc_a[0], self.desc_a[0]])
        matcher = FeatureMatcher({"method": "ratio_test"})
        matches = matcher.match(self.feat_a[:1], self.desc_a[:1], make_features(2), desc_b)
        self.assertEqual(matches, [])

    def test_cross_check(self):
        desc_a = torch.stack([self.desc_a[0], self.desc_a[0]])
        matcher = FeatureMatcher({"method": "nearest_neighbor", "cross_check": True})
        matches = matcher.match(make_features(2), desc_a, self.feat_b[:1], self.desc_a[:1])
        self.assertEqual(matches, [Match(0, 0)])

    def test_max_distance(self):
        desc_a = torch.eye(4)[:3]
        desc_b = torch.eye(4)[[0, 1, 3]]
        matcher = FeatureMatcher({"method": "nearest_neighbor", "max_distance": 0.5})
        matches = matcher.match(make_features(3), desc_a, make_features(3), desc_b)
        self.assertEqual({tuple(m) for m in matches}, {(0, 0), (1, 1)})

    def test_one_to_one_is_unique(self):
        desc_a = torch.tensor([[1.0, 0.0], [0.9, 0.1], [0.0, 1.0]])
        desc_b = torch.tensor([[1.0, 0.0], [0.0, 1.0]])
        matcher = FeatureMatcher({"method": "one_to_one"})
        matches = matcher.match(make_features(3), desc_a, make_features(2), desc_b)
        self.assertEqual(len(matches), 2)
        self.assertEqual(len({m.train_idx for m in matches}), 2)

    def test_empty_inputs(self):
        matcher = FeatureMatcher()
        empty = torch.zeros((0, 4))
        self.assertEqual(matcher.match([], empty, self.feat_b, self.desc_b), [])

    def test_failures_return_none(self):
        matcher = FeatureMatcher()
        # Misaligned features and descriptors
        self.assertIsNone(matcher.match(self.feat_a[:2], self.desc_a, self.feat_b, self.desc_b))
        # Mixed descriptor types
        binary = torch.zeros((4, 4), dtype=torch.uint8)
        self.assertIsNone(matcher.match(self.feat_a, self.desc_a, self.feat_b, binary))
        # Different descriptor lengths
        self.assertIsNone(matcher.match(self.feat_a, self.desc_a, self.feat_b, torch.eye(4, 5)))
        self.assertIsNone(matcher.match(self.feat_a, None, self.feat_b, self.desc_b))

    def test_check_configuration(self):
        self.assertTrue(FeatureMatcher.check_configuration({"method": "mutual_nearest"}))
        self.assertFalse(FeatureMatcher.check_configuration({"method": "telepathy"}))
        self.assertFalse(FeatureMatcher.check_configuration({"ratio_threshold": 1.5}))


if __name__ == "__main__":
    unittest.main()
