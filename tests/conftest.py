from typing import List, Optional

import pytest
import torch

from torchtracks.frontend.feature_extraction import (
    BaseDescriptorExtractor,
    BaseFeatureDetector,
    BaseFeatureMatcher,
    KeyPoint,
    Match,
)
from torchtracks.frontend.tracking import CoreFeatureTracker, TrackSet


class ListFeatureDetector(BaseFeatureDetector):
    """Detector returning the points assigned to ``points`` before each call."""

    def __init__(self, config=None):
        super().__init__(config)
        self.points = []
        self.calls = 0

    def detect(self, image, mask=None) -> List[KeyPoint]:
        self.calls += 1
        return [KeyPoint(float(x), float(y)) for x, y in self.points]


class CoordinateDescriptorExtractor(BaseDescriptorExtractor):
    """Describes a feature by its own coordinates."""

    descriptor_size = 2

    def extract(self, image, features, mask=None) -> torch.Tensor:
        return torch.tensor(
            [[kp.x, kp.y] for kp in features], dtype=torch.float32
        ).reshape(-1, 2)


class CoordinateMatcher(BaseFeatureMatcher):
    """Matches features located at the same coordinates."""

    def match(self, features_a, descriptors_a, features_b, descriptors_b) -> Optional[List[Match]]:
        matches = []
        for i, a in enumerate(features_a):
            for j, b in enumerate(features_b):
                if a.pt() == b.pt():
                    matches.append(Match(i, j))
                    break
        return matches


@pytest.fixture
def image():
    return torch.zeros((1, 32, 32))


@pytest.fixture
def detector():
    return ListFeatureDetector()


@pytest.fixture
def extractor():
    return CoordinateDescriptorExtractor()


@pytest.fixture
def matcher():
    return CoordinateMatcher()


@pytest.fixture
def tracker(detector, extractor, matcher):
    return CoreFeatureTracker(detector=detector, extractor=extractor, matcher=matcher)


@pytest.fixture
def step(tracker, detector, image):
    """Run the tracker on one frame whose detections are ``points``."""

    def run(prev_tracks: Optional[TrackSet], frame_number: int, points) -> TrackSet:
        detector.points = points
        return tracker.extend(prev_tracks, frame_number, image)

    return run
