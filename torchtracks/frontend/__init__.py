"""
Frontend module for the torchtracks library.

This module contains the feature extraction components and the feature
tracking components built on top of them.
"""

from .feature_extraction import (
    BaseDescriptorExtractor,
    BaseFeatureDetector,
    BaseFeatureMatcher,
    KeyPoint,
    Match,
)
from .tracking import (
    BaseLoopCloser,
    CoreFeatureTracker,
    ExhaustiveLoopCloser,
    Track,
    TrackSet,
    TrackState,
)

__all__ = [
    "KeyPoint",
    "Match",
    "BaseFeatureDetector",
    "BaseDescriptorExtractor",
    "BaseFeatureMatcher",
    "Track",
    "TrackSet",
    "TrackState",
    "CoreFeatureTracker",
    "BaseLoopCloser",
    "ExhaustiveLoopCloser",
]
